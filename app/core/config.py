import base64
import ipaddress
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


def _load_doppler_secrets():
    """Load secrets from Doppler API into environment variables.

    Must run BEFORE Settings is instantiated so pydantic can read the env vars.
    """
    token = os.getenv("DOPPLER_TOKEN")
    if not token:
        return

    try:
        import requests
        response = requests.get(
            "https://api.doppler.com/v3/configs/config/secrets/download",
            params={"format": "json"},
            auth=(token, ""),
            timeout=30,
        )
        response.raise_for_status()
        secrets = response.json()

        # Don't override existing env vars
        for key, value in secrets.items():
            if key not in os.environ:
                os.environ[key] = value

        logger.info(f"Loaded {len(secrets)} secrets from Doppler")
    except Exception as e:
        logger.warning(f"Failed to load Doppler secrets: {e}")


_load_doppler_secrets()


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_secret_key: str = ""
    supabase_jwt_secret: str = ""  # HS256 secret for employee access tokens

    # Server
    base_url: str = "http://localhost:8000"

    # Business
    organization_name: str = "Vigo Coffee"

    # Apple Developer
    apple_team_id: str = ""
    pass_type_id: str = "pass.com.vigocoffee.loyalty"
    gift_card_pass_type_id: str = "pass.com.vigocoffee.giftcard"

    # Signing credentials (base64-encoded PEM)
    apple_pass_cert_base64: str = ""
    apple_pass_key_base64: str = ""
    apple_pass_password: str | None = None
    apple_wwdr_cert_base64: str = ""

    # Gift card signing credentials, fall back to the loyalty ones when blank
    gift_card_pass_cert_base64: str = ""
    gift_card_pass_key_base64: str = ""
    gift_card_pass_password: str | None = None
    gift_card_wwdr_cert_base64: str = ""

    # Secret used to derive per-pass authentication tokens
    pass_auth_secret: str = ""

    # APNs (token-based auth with a .p8 key)
    apns_key_id: str = ""
    apns_team_id: str = ""
    apns_key_base64: str = ""
    apns_production: bool = False

    # Static images bundled into every pass
    pass_assets_dir: str = "pass_assets"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


@dataclass(frozen=True)
class SigningCredentials:
    """Decoded material needed to sign a pass manifest."""

    team_id: str
    pass_type_id: str
    signer_cert_pem: bytes
    signer_key_pem: bytes
    wwdr_cert_pem: bytes
    key_password: bytes | None = None


def get_public_base_url() -> str:
    """Get the public base URL for the API, always with a scheme."""
    base = settings.base_url.strip().rstrip("/")
    if not base.startswith(("http://", "https://")):
        base = f"https://{base}"
    return base


_PRIVATE_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}


def is_publicly_reachable(url: str) -> bool:
    """
    Classify a base URL as reachable from the internet.

    Pure string classification, no DNS lookup. Loopback, link-local,
    unspecified, RFC1918 addresses and ``*.local``/``localhost`` names
    are private.
    """
    if not url:
        return False

    if "://" not in url:
        url = f"https://{url}"

    try:
        host = urlparse(url).hostname
    except ValueError:
        return False

    if not host:
        return False

    host = host.lower()
    if host in _PRIVATE_HOSTNAMES or host.endswith(".localhost") or host.endswith(".local"):
        return False

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        # A regular DNS name
        return True

    return not (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_unspecified
    )


def _decode(value: str) -> bytes:
    return base64.b64decode(value.strip())


def get_signing_credentials(kind: str = "loyalty") -> SigningCredentials:
    """
    Resolve signing credentials for a pass kind ("loyalty" or "giftcard").

    Raises:
        ConfigurationMissing: if the certificate, key, WWDR certificate or
            team identifier is not configured.
    """
    from app.core.errors import ConfigurationMissing

    if kind == "giftcard":
        pass_type_id = settings.gift_card_pass_type_id
        cert = settings.gift_card_pass_cert_base64 or settings.apple_pass_cert_base64
        key = settings.gift_card_pass_key_base64 or settings.apple_pass_key_base64
        password = settings.gift_card_pass_password or settings.apple_pass_password
        wwdr = settings.gift_card_wwdr_cert_base64 or settings.apple_wwdr_cert_base64
    else:
        pass_type_id = settings.pass_type_id
        cert = settings.apple_pass_cert_base64
        key = settings.apple_pass_key_base64
        password = settings.apple_pass_password
        wwdr = settings.apple_wwdr_cert_base64

    team_id = settings.apple_team_id.strip()
    missing = [
        name
        for name, value in (
            ("certificate", cert),
            ("private key", key),
            ("WWDR certificate", wwdr),
            ("team identifier", team_id),
            ("pass type identifier", pass_type_id),
        )
        if not value
    ]
    if missing:
        raise ConfigurationMissing(f"Pass signing not configured: missing {', '.join(missing)}")

    try:
        return SigningCredentials(
            team_id=team_id,
            pass_type_id=pass_type_id,
            signer_cert_pem=_decode(cert),
            signer_key_pem=_decode(key),
            wwdr_cert_pem=_decode(wwdr),
            key_password=password.encode() if password else None,
        )
    except ValueError as e:
        raise ConfigurationMissing(f"Pass signing credentials are not valid base64: {e}") from e
