"""
Error taxonomy for the wallet-pass service.

Every error carries the HTTP status it maps to and a ``detail`` that is
safe to return to a remote caller.
"""


class PassSyncError(Exception):
    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ConfigurationMissing(PassSyncError):
    """Required signing or auth secrets are absent. Never retried."""

    status_code = 500
    default_detail = "Server configuration error"


class Unauthorized(PassSyncError):
    status_code = 401
    default_detail = "Unauthorized"


class NotFound(PassSyncError):
    status_code = 404
    default_detail = "Not found"


class TransientWriteConflict(PassSyncError):
    """A write still failed after the single reduced-payload retry."""

    status_code = 503
    default_detail = "Temporary write failure, please retry"


class NotificationDispatchFailure(PassSyncError):
    """A push to one device failed. Counted, never surfaced."""

    status_code = 502
    default_detail = "Push notification failed"


class InternalError(PassSyncError):
    status_code = 500
    default_detail = "Internal server error"


class InvalidRedemption(PassSyncError):
    status_code = 400
    default_detail = "Reward cannot be redeemed"


class RewardAlreadyRedeemed(InvalidRedemption):
    default_detail = "Reward already redeemed"


class RewardNotAvailable(InvalidRedemption):
    default_detail = "Reward not available"
