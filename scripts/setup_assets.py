#!/usr/bin/env python3
"""
Generate placeholder pass assets for the loyalty and gift cards.
Run this once before starting the server; replace the files with the
real artwork when it is available.
"""

from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

OUTPUT_DIR = Path(__file__).parent.parent / "pass_assets"

BLACK = (0, 0, 0, 255)
WHITE = (255, 255, 255, 255)
RED = (200, 30, 40, 255)


def create_icon(size: int, filename: str, output_dir: Path):
    """Create a coffee cup icon."""
    img = Image.new("RGBA", (size, size), BLACK)
    draw = ImageDraw.Draw(img)

    cup_width = int(size * 0.6)
    cup_height = int(size * 0.5)
    cup_left = (size - cup_width) // 2
    cup_top = int(size * 0.35)

    # Cup body
    draw.rectangle(
        [cup_left, cup_top, cup_left + cup_width, cup_top + cup_height],
        fill=WHITE,
    )

    # Cup handle
    handle_radius = int(size * 0.12)
    handle_x = cup_left + cup_width
    handle_y = cup_top + cup_height // 3
    draw.arc(
        [handle_x, handle_y, handle_x + handle_radius * 2, handle_y + handle_radius * 2],
        start=-90,
        end=90,
        fill=WHITE,
        width=max(1, size // 20),
    )

    img.save(output_dir / filename)
    print(f"Created {filename} ({size}x{size})")


def create_logo(width: int, height: int, filename: str, output_dir: Path):
    """Create a logo with the business name."""
    img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    font_size = int(height * 0.45)
    try:
        font = ImageFont.truetype("/System/Library/Fonts/Helvetica.ttc", font_size)
    except (IOError, OSError):
        try:
            font = ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", font_size)
        except (IOError, OSError):
            font = ImageFont.load_default()

    text = "VIGO COFFEE"
    bbox = draw.textbbox((0, 0), text, font=font)
    text_width = bbox[2] - bbox[0]
    text_height = bbox[3] - bbox[1]

    x = (width - text_width) // 2 - bbox[0]
    y = (height - text_height) // 2 - bbox[1]

    draw.text((x, y), text, fill=WHITE, font=font)

    img.save(output_dir / filename)
    print(f"Created {filename} ({width}x{height})")


def create_stamp(size: int, color: tuple, filename: str, output_dir: Path):
    """Create a tiger-head stamp: round face, two ears, three stripes."""
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    ear = size // 4
    draw.ellipse([size * 0.08, size * 0.05, size * 0.08 + ear, size * 0.05 + ear], fill=color)
    draw.ellipse([size * 0.92 - ear, size * 0.05, size * 0.92, size * 0.05 + ear], fill=color)
    draw.ellipse([size * 0.1, size * 0.15, size * 0.9, size * 0.95], fill=color)

    stripe = BLACK
    width = max(1, size // 16)
    for offset in (-0.15, 0, 0.15):
        x = size / 2 + size * offset
        draw.line([(x, size * 0.2), (x, size * 0.38)], fill=stripe, width=width)

    # Eyes
    eye = size // 10
    for cx in (size * 0.35, size * 0.65):
        draw.ellipse([cx - eye / 2, size * 0.5, cx + eye / 2, size * 0.5 + eye], fill=stripe)

    img.save(output_dir / filename)
    print(f"Created {filename} ({size}x{size})")


def main():
    OUTPUT_DIR.mkdir(exist_ok=True)

    # Create icons at different resolutions
    create_icon(29, "icon.png", OUTPUT_DIR)
    create_icon(58, "icon@2x.png", OUTPUT_DIR)
    create_icon(87, "icon@3x.png", OUTPUT_DIR)

    # Create logos
    create_logo(160, 50, "logo.png", OUTPUT_DIR)
    create_logo(320, 100, "logo@2x.png", OUTPUT_DIR)

    # Stamps for the loyalty card background
    create_stamp(120, RED, "tiger-red.png", OUTPUT_DIR)
    create_stamp(120, WHITE, "tiger-white.png", OUTPUT_DIR)

    print("\nPass assets created successfully!")
    print(f"Location: {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
