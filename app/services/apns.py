import base64
import logging
import os
import tempfile

from app.core.config import Settings, settings as default_settings
from app.core.errors import NotificationDispatchFailure

logger = logging.getLogger(__name__)

# Stale update pushes are worthless past this horizon
PUSH_EXPIRY_SECONDS = 3600

# Wallet only needs to be told to re-fetch; no alert, sound or badge
SILENT_PAYLOAD = {"aps": {"content-available": 1}}


class APNsClient:
    """Apple Push Notification service client for Wallet pass updates.

    Authenticates with a token-signing (.p8) key. The underlying aioapns
    client is created lazily inside the event loop and reused.
    """

    def __init__(
        self,
        topic: str,
        key_pem: bytes,
        key_id: str,
        team_id: str,
        use_sandbox: bool = True,
    ):
        if not key_pem or not key_id or not team_id:
            raise ValueError("key_pem, key_id and team_id must be provided")
        self.topic = topic
        self.key_pem = key_pem
        self.key_id = key_id
        self.team_id = team_id
        self.use_sandbox = use_sandbox
        self._client = None

    def _get_client(self):
        """Get or create the aioapns client."""
        if self._client is None:
            from aioapns import APNs

            # aioapns reads the key from a path when the pool is built
            fd, key_path = tempfile.mkstemp(suffix=".p8")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(self.key_pem)
                self._client = APNs(
                    key=key_path,
                    key_id=self.key_id,
                    team_id=self.team_id,
                    topic=self.topic,
                    use_sandbox=self.use_sandbox,
                )
            finally:
                os.unlink(key_path)
        return self._client

    async def send_pass_update(self, push_token: str, topic: str | None = None) -> bool:
        """Send a silent push telling Wallet to re-fetch the pass.

        One token-signing key covers every pass type of the team, so the
        topic can be overridden per call.

        Raises:
            NotificationDispatchFailure: if APNs rejects the token or the
                request cannot be delivered.
        """
        from aioapns.common import NotificationRequest, PushType, PRIORITY_NORMAL

        request = NotificationRequest(
            device_token=push_token,
            message=SILENT_PAYLOAD,
            time_to_live=PUSH_EXPIRY_SECONDS,
            priority=PRIORITY_NORMAL,
            push_type=PushType.BACKGROUND,
            apns_topic=topic or self.topic,
        )

        try:
            response = await self._get_client().send_notification(request)
        except Exception as e:
            raise NotificationDispatchFailure(f"Push error for {push_token[:8]}...: {e}") from e

        if not response.is_successful:
            raise NotificationDispatchFailure(
                f"Push rejected for {push_token[:8]}...: {response.status} - {response.description}"
            )

        logger.info(f"Push sent successfully to {push_token[:8]}...")
        return True


_apns_client: APNsClient | None = None


def init_apns_client(config: Settings | None = None) -> APNsClient | None:
    """Build an APNsClient from settings.

    Returns None when push credentials are incomplete; pass updates then
    only arrive when the customer opens Wallet.
    """
    config = config or default_settings
    if not (config.apns_key_id and config.apns_team_id and config.apns_key_base64 and config.pass_type_id):
        return None

    try:
        key_pem = base64.b64decode(config.apns_key_base64.strip())
    except ValueError as e:
        logger.error(f"APNS_KEY_BASE64 is not valid base64: {e}")
        return None

    return APNsClient(
        topic=config.pass_type_id,
        key_pem=key_pem,
        key_id=config.apns_key_id,
        team_id=config.apns_team_id,
        use_sandbox=not config.apns_production,
    )


def get_apns_client() -> APNsClient | None:
    """Return the process-wide APNs client, creating it on first use."""
    global _apns_client
    if _apns_client is None:
        _apns_client = init_apns_client()
    return _apns_client


def reset_apns_client(client: APNsClient | None = None) -> None:
    """Drop the cached client, optionally replacing it (tests)."""
    global _apns_client
    _apns_client = client
