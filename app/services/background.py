"""
Background and strip images for Wallet passes.

The loyalty card shows a 5 x 2 grid of stamps on a black top section and a
plain white bottom section; the gift card shows the logo and the balance.
"""

import io
from decimal import Decimal
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

# Apple Wallet storeCard background dimensions (@1x)
BACKGROUND_WIDTH = 390
BACKGROUND_HEIGHT = 234

# strip.png for storeCard (@1x); @2x doubles both sides
STRIP_WIDTH = 375
STRIP_HEIGHT = 144

TOTAL_STAMPS = 10
STAMPS_PER_ROW = 5

TOP_COLOR = (0, 0, 0, 255)
BOTTOM_COLOR = (255, 255, 255, 255)


def stamp_progress(points_balance: int) -> int:
    """Stamps filled on the card; a full card shows 10, not 0."""
    if points_balance > 0 and points_balance % TOTAL_STAMPS == 0:
        return TOTAL_STAMPS
    return max(points_balance, 0) % TOTAL_STAMPS


def _png(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


def _load_font(size: int) -> ImageFont.ImageFont:
    for path in (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
    ):
        try:
            return ImageFont.truetype(path, size)
        except (IOError, OSError):
            continue
    return ImageFont.load_default()


def _draw_centered(draw: ImageDraw.ImageDraw, center: tuple[int, int], text: str, font, fill) -> None:
    bbox = draw.textbbox((0, 0), text, font=font)
    width = bbox[2] - bbox[0]
    height = bbox[3] - bbox[1]
    draw.text((center[0] - width // 2 - bbox[0], center[1] - height // 2 - bbox[1]), text, fill=fill, font=font)


def _export(background: Image.Image, top_ratio: float) -> dict[str, bytes]:
    """Emit background and strip files at @1x and @2x."""
    files = {
        "background.png": _png(background),
        "background@2x.png": _png(
            background.resize((BACKGROUND_WIDTH * 2, BACKGROUND_HEIGHT * 2), Image.LANCZOS)
        ),
    }

    top = background.crop((0, 0, BACKGROUND_WIDTH, int(BACKGROUND_HEIGHT * top_ratio)))
    for suffix, scale in (("", 1), ("@2x", 2)):
        strip = _cover(top, STRIP_WIDTH * scale, STRIP_HEIGHT * scale)
        files[f"strip{suffix}.png"] = _png(strip)

    return files


def _cover(img: Image.Image, width: int, height: int) -> Image.Image:
    """Resize to fill width x height, cropping from the top."""
    scale = max(width / img.width, height / img.height)
    resized = img.resize((max(1, round(img.width * scale)), max(1, round(img.height * scale))), Image.LANCZOS)
    left = (resized.width - width) // 2
    return resized.crop((left, 0, left + width, height))


class LoyaltyBackgroundRenderer:
    """Render the stamp grid for a points balance.

    Needs ``tiger-red.png`` (collected) and ``tiger-white.png`` (remaining)
    in the assets directory; raises FileNotFoundError otherwise so the pass
    can be built without a background.
    """

    top_ratio = 0.7

    def __init__(
        self,
        assets_dir: Path,
        filled_icon: str = "tiger-red.png",
        empty_icon: str = "tiger-white.png",
    ):
        self.assets_dir = Path(assets_dir)
        self.filled_icon = filled_icon
        self.empty_icon = empty_icon

    def _load_icon(self, filename: str) -> Image.Image:
        path = self.assets_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Stamp icon not found: {path}")
        with Image.open(path) as img:
            return img.convert("RGBA")

    def render(self, points_balance: int) -> dict[str, bytes]:
        filled = self._load_icon(self.filled_icon)
        empty = self._load_icon(self.empty_icon)

        top_height = int(BACKGROUND_HEIGHT * self.top_ratio)
        img = Image.new("RGBA", (BACKGROUND_WIDTH, BACKGROUND_HEIGHT), BOTTOM_COLOR)
        ImageDraw.Draw(img).rectangle([0, 0, BACKGROUND_WIDTH, top_height], fill=TOP_COLOR)

        # Keep clear of the header field in the top right
        grid_top = 20
        grid_bottom_padding = 25
        side_padding = 20
        rows = TOTAL_STAMPS // STAMPS_PER_ROW
        cell_width = (BACKGROUND_WIDTH - 2 * side_padding) / STAMPS_PER_ROW
        cell_height = (top_height - grid_top - grid_bottom_padding) / rows
        icon_size = int(max(25, min(cell_width * 0.65, cell_height * 0.65, 40)))

        filled_icon = filled.resize((icon_size, icon_size), Image.LANCZOS)
        empty_icon = empty.resize((icon_size, icon_size), Image.LANCZOS)

        collected = stamp_progress(points_balance)
        for index in range(TOTAL_STAMPS):
            row, column = divmod(index, STAMPS_PER_ROW)
            x = side_padding + column * cell_width + (cell_width - icon_size) / 2
            y = grid_top + row * cell_height + (cell_height - icon_size) / 2
            icon = filled_icon if index < collected else empty_icon
            img.alpha_composite(icon, (int(x), int(y)))

        return _export(img, self.top_ratio)


class GiftCardBackgroundRenderer:
    """Render the logo over the remaining balance in MXN."""

    top_ratio = 0.6
    logo_size = 80

    def __init__(self, assets_dir: Path, logo: str = "logo.png"):
        self.assets_dir = Path(assets_dir)
        self.logo = logo

    def render(self, balance_mxn: Decimal) -> dict[str, bytes]:
        logo_path = self.assets_dir / self.logo
        if not logo_path.exists():
            raise FileNotFoundError(f"Logo not found: {logo_path}")

        top_height = int(BACKGROUND_HEIGHT * self.top_ratio)
        img = Image.new("RGBA", (BACKGROUND_WIDTH, BACKGROUND_HEIGHT), BOTTOM_COLOR)
        draw = ImageDraw.Draw(img)
        draw.rectangle([0, 0, BACKGROUND_WIDTH, top_height], fill=TOP_COLOR)

        with Image.open(logo_path) as logo:
            logo = logo.convert("RGBA")
            logo.thumbnail((self.logo_size, self.logo_size), Image.LANCZOS)
            img.alpha_composite(
                logo,
                ((BACKGROUND_WIDTH - logo.width) // 2, (top_height - logo.height) // 2),
            )

        bottom_height = BACKGROUND_HEIGHT - top_height
        balance_y = top_height + int(bottom_height * 0.4)
        _draw_centered(draw, (BACKGROUND_WIDTH // 2, balance_y), f"${Decimal(balance_mxn):.2f}", _load_font(32), (0, 0, 0, 255))
        _draw_centered(
            draw,
            (BACKGROUND_WIDTH // 2, min(balance_y + 26, BACKGROUND_HEIGHT - 8)),
            "MXN",
            _load_font(14),
            (102, 102, 102, 255),
        )

        return _export(img, self.top_ratio)
