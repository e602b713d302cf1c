import hashlib
import io
import json
import logging
import zipfile
from abc import ABC, abstractmethod
from decimal import Decimal
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from app.core.config import (
    SigningCredentials,
    get_public_base_url,
    get_signing_credentials,
    is_publicly_reachable,
    settings,
)
from app.core.errors import ConfigurationMissing
from app.core.security import generate_auth_token
from app.domain.schemas import CustomerPassState, GiftCardPassState
from app.services import rewards
from app.services.background import GiftCardBackgroundRenderer, LoyaltyBackgroundRenderer

logger = logging.getLogger(__name__)

PKPASS_MEDIA_TYPE = "application/vnd.apple.pkpass"

ASSET_FILES = ["icon.png", "icon@2x.png", "icon@3x.png", "logo.png", "logo@2x.png"]

BACKGROUND_COLOR = "rgb(0, 0, 0)"
FOREGROUND_COLOR = "rgb(255, 255, 255)"
LABEL_COLOR = "rgb(200, 200, 200)"

PROJECT_ROOT = Path(__file__).parent.parent.parent


def _load_certificate(data: bytes, name: str) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError:
        pass
    try:
        return x509.load_der_x509_certificate(data)
    except ValueError as e:
        raise ConfigurationMissing(f"{name} is not a PEM or DER certificate") from e


def _load_private_key(data: bytes, password: bytes | None):
    try:
        return serialization.load_pem_private_key(data, password=password)
    except (ValueError, TypeError):
        pass
    try:
        return serialization.load_der_private_key(data, password=password)
    except (ValueError, TypeError) as e:
        raise ConfigurationMissing("Pass signing key could not be loaded (wrong format or passphrase)") from e


def _barcode(message: str) -> dict:
    return {
        "message": message,
        "format": "PKBarcodeFormatQR",
        "messageEncoding": "iso-8859-1",
    }


class PassGenerator(ABC):
    """Build signed .pkpass archives for one pass type.

    Subclasses provide the storeCard fields and the input for the
    background renderer.
    """

    description = "Pass"
    web_service_path = "/pass"

    def __init__(
        self,
        credentials: SigningCredentials,
        base_url: str,
        organization_name: str = "Vigo Coffee",
        assets_dir: Path | None = None,
        background_renderer=None,
    ):
        self.credentials = credentials
        self.pass_type_id = credentials.pass_type_id
        self.team_id = credentials.team_id
        self.base_url = base_url.rstrip("/")
        self.organization_name = organization_name
        self.assets_dir = Path(assets_dir) if assets_dir else PROJECT_ROOT / "pass_assets"
        self.background_renderer = background_renderer

        # Parsed once; unreadable material raises ConfigurationMissing here
        self._signer_cert = _load_certificate(credentials.signer_cert_pem, "Pass certificate")
        self._signer_key = _load_private_key(credentials.signer_key_pem, credentials.key_password)
        self._wwdr_cert = _load_certificate(credentials.wwdr_cert_pem, "WWDR certificate")

    @property
    def web_service_url(self) -> str | None:
        """Callback URL for Wallet, or None when the server is not public."""
        if not is_publicly_reachable(self.base_url):
            return None
        return f"{self.base_url}{self.web_service_path}"

    @abstractmethod
    def _store_card(self, state) -> dict:
        """Fields of the storeCard section."""

    @abstractmethod
    def _background_input(self, state):
        """Value handed to the background renderer."""

    def _create_pass_json(self, state, auth_token: str) -> dict:
        """Create the pass.json content."""
        pass_json = {
            "formatVersion": 1,
            "passTypeIdentifier": self.pass_type_id,
            "teamIdentifier": self.team_id,
            "serialNumber": state.serial_number,
            "authenticationToken": auth_token,
            "organizationName": self.organization_name,
            "description": f"{self.organization_name} {self.description}",
            "foregroundColor": FOREGROUND_COLOR,
            "backgroundColor": BACKGROUND_COLOR,
            "labelColor": LABEL_COLOR,
            "storeCard": self._store_card(state),
            "barcode": _barcode(state.serial_number),
            "barcodes": [_barcode(state.serial_number)],
        }

        web_service_url = self.web_service_url
        if web_service_url:
            pass_json["webServiceURL"] = web_service_url
        else:
            logger.info(f"Base URL {self.base_url} is not public, omitting webServiceURL")

        return pass_json

    def _create_manifest(self, files: dict[str, bytes]) -> bytes:
        """Create manifest.json with SHA-1 hashes of all files."""
        manifest = {}
        for filename, content in files.items():
            manifest[filename] = hashlib.sha1(content).hexdigest()
        return json.dumps(manifest).encode("utf-8")

    def _sign_manifest(self, manifest_data: bytes) -> bytes:
        """Create the PKCS#7 detached DER signature over manifest.json."""
        return (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(manifest_data)
            .add_signer(self._signer_cert, self._signer_key, hashes.SHA256())
            .add_certificate(self._wwdr_cert)
            .sign(
                serialization.Encoding.DER,
                [pkcs7.PKCS7Options.DetachedSignature, pkcs7.PKCS7Options.Binary],
            )
        )

    def _get_asset_files(self) -> dict[str, bytes]:
        """Load the static icon and logo images."""
        files = {}
        for filename in ASSET_FILES:
            filepath = self.assets_dir / filename
            if filepath.exists():
                files[filename] = filepath.read_bytes()
        if "icon.png" not in files:
            logger.warning(f"icon.png missing from {self.assets_dir}, Wallet may reject the pass")
        return files

    def _get_background_files(self, state) -> dict[str, bytes]:
        if self.background_renderer is None:
            return {}
        try:
            return self.background_renderer.render(self._background_input(state))
        except Exception as e:
            logger.warning(f"Background for pass {state.serial_number[:8]}... not rendered, omitting: {e}")
            return {}

    def generate_pass(self, state, auth_token: str | None = None) -> bytes:
        """Generate a complete .pkpass file for the given pass state."""
        if auth_token is None:
            auth_token = generate_auth_token(state.serial_number)

        files = self._get_asset_files()
        files.update(self._get_background_files(state))

        pass_json = self._create_pass_json(state, auth_token)
        files["pass.json"] = json.dumps(pass_json, ensure_ascii=False).encode("utf-8")

        manifest_data = self._create_manifest(files)
        files["manifest.json"] = manifest_data
        files["signature"] = self._sign_manifest(manifest_data)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename, content in files.items():
                zf.writestr(filename, content)

        return buffer.getvalue()


class LoyaltyPassGenerator(PassGenerator):
    description = "Loyalty Card"
    web_service_path = "/pass"

    def _store_card(self, state: CustomerPassState) -> dict:
        status = rewards.evaluate(state.points_balance, state.redeemed_rewards)
        return {
            "headerFields": [
                {
                    "key": "balance",
                    "label": "BALANCE",
                    "value": f"{state.points_balance} pts",
                    "textAlignment": "PKTextAlignmentRight",
                }
            ],
            "secondaryFields": [
                {
                    "key": "member",
                    "label": "MEMBER",
                    "value": state.display_name,
                    "textAlignment": "PKTextAlignmentLeft",
                }
            ],
            "auxiliaryFields": [
                {
                    "key": "rewardLabel",
                    "label": status.label,
                    "value": status.message,
                    "textAlignment": "PKTextAlignmentLeft",
                }
            ],
            "backFields": [
                {
                    "key": "rewardStructure",
                    "label": "Reward Structure",
                    "value": rewards.REWARD_STRUCTURE,
                }
            ],
        }

    def _background_input(self, state: CustomerPassState) -> int:
        return state.points_balance


def _mxn(amount: Decimal) -> str:
    return f"${amount:.2f}"


class GiftCardPassGenerator(PassGenerator):
    description = "Gift Card"
    web_service_path = "/pass/giftcard"

    def _store_card(self, state: GiftCardPassState) -> dict:
        if state.balance_mxn <= 0:
            status = "Balance is zero"
        elif not state.is_active:
            status = "Inactive"
        else:
            status = "Active"

        return {
            "headerFields": [
                {
                    "key": "balance",
                    "label": "BALANCE",
                    "value": _mxn(state.balance_mxn),
                    "textAlignment": "PKTextAlignmentRight",
                }
            ],
            "secondaryFields": [
                {
                    "key": "recipient",
                    "label": "RECIPIENT",
                    "value": state.recipient_name,
                    "textAlignment": "PKTextAlignmentLeft",
                }
            ],
            "auxiliaryFields": [
                {"key": "status", "label": "STATUS", "value": status},
            ],
            "backFields": [
                {
                    "key": "initialBalance",
                    "label": "Initial Balance",
                    "value": f"{_mxn(state.initial_balance_mxn)} MXN",
                },
                {
                    "key": "currentBalance",
                    "label": "Current Balance",
                    "value": f"{_mxn(state.balance_mxn)} MXN",
                },
                {
                    "key": "balanceUsed",
                    "label": "Balance Used",
                    "value": f"{_mxn(max(state.initial_balance_mxn - state.balance_mxn, Decimal('0')))} MXN",
                },
            ],
        }

    def _background_input(self, state: GiftCardPassState) -> Decimal:
        return state.balance_mxn


def resolve_assets_dir() -> Path:
    assets_dir = Path(settings.pass_assets_dir)
    return assets_dir if assets_dir.is_absolute() else PROJECT_ROOT / assets_dir


def create_pass_generator(kind: str = "loyalty", background_renderer=None) -> PassGenerator:
    """Factory function to create a PassGenerator from settings.

    Raises:
        ConfigurationMissing: if signing credentials are absent or unreadable.
    """
    credentials = get_signing_credentials(kind)
    assets_dir = resolve_assets_dir()

    if kind == "giftcard":
        generator_class = GiftCardPassGenerator
        renderer = background_renderer or GiftCardBackgroundRenderer(assets_dir)
    else:
        generator_class = LoyaltyPassGenerator
        renderer = background_renderer or LoyaltyBackgroundRenderer(assets_dir)

    return generator_class(
        credentials,
        base_url=get_public_base_url(),
        organization_name=settings.organization_name,
        assets_dir=assets_dir,
        background_renderer=renderer,
    )
