"""
Apple Wallet web service protocol.

One handler serves one pass type. Loyalty cards and gift cards share the
same wire shape and differ only in how pass state is loaded and which
generator builds the archive. Every call returns a terminal Response;
nothing raised here reaches the remote caller as an unhandled error.
"""

import functools
import json
import logging
from datetime import datetime, timezone
from email.utils import formatdate, parsedate_to_datetime
from typing import Callable, Generic, Protocol, TypeVar

from fastapi import Response
from fastapi.responses import JSONResponse

from app.core.errors import InternalError, NotFound, PassSyncError, Unauthorized
from app.core.security import validate_auth_token, verify_auth_token
from app.services.device_registry import DeviceRegistry
from app.services.pass_generator import PKPASS_MEDIA_TYPE, PassGenerator

logger = logging.getLogger(__name__)


class PassState(Protocol):
    serial_number: str
    last_modified_at: datetime | None


StateT = TypeVar("StateT", bound=PassState)


def _terminal_response(func):
    """Map any failure to a status-only response instead of raising."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs) -> Response:
        try:
            return func(self, *args, **kwargs)
        except PassSyncError as e:
            if e.status_code >= 500:
                logger.error(f"[{self.name}] {func.__name__} failed: {e.detail}")
            return JSONResponse(status_code=e.status_code, content={"detail": e.detail})
        except Exception:
            logger.exception(f"[{self.name}] Unexpected error in {func.__name__}")
            error = InternalError()
            return JSONResponse(status_code=error.status_code, content={"detail": error.detail})

    return wrapper


def parse_if_modified_since(value: str | None) -> datetime | None:
    """Parse an HTTP date header; malformed values are treated as absent."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_updated_since(value: str | None) -> datetime | None:
    """Parse ``passesUpdatedSince`` (a Unix timestamp); unparsable is ignored."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def is_not_modified(last_modified: datetime | None, since: datetime | None) -> bool:
    """HTTP dates have second precision, so compare on whole seconds."""
    if last_modified is None or since is None:
        return False
    return last_modified.replace(microsecond=0) <= since


def http_date(value: datetime) -> str:
    return formatdate(value.timestamp(), usegmt=True)


class PassProtocolHandler(Generic[StateT]):

    def __init__(
        self,
        pass_type_id: str,
        load_state: Callable[[str], StateT | None],
        create_generator: Callable[[], PassGenerator],
        registry: DeviceRegistry | None = None,
        name: str = "loyalty",
    ):
        self.pass_type_id = pass_type_id
        self.load_state = load_state
        self.create_generator = create_generator
        self.registry = registry or DeviceRegistry()
        self.name = name

    def _authenticate(self, authorization: str | None, serial_number: str) -> None:
        token = verify_auth_token(authorization)
        if not validate_auth_token(token, serial_number):
            logger.warning(f"[{self.name}] Rejected auth for pass {serial_number[:8]}...")
            raise Unauthorized()

    @_terminal_response
    def register(
        self,
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        authorization: str | None,
        body: bytes | str | dict | None,
    ) -> Response:
        """Register a device for push updates of a pass (201 Created)."""
        self._authenticate(authorization, serial_number)
        self.registry.register(device_library_id, pass_type_id, serial_number, body)
        return Response(status_code=201)

    @_terminal_response
    def unregister(
        self,
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        authorization: str | None,
    ) -> Response:
        self._authenticate(authorization, serial_number)
        self.registry.unregister(device_library_id, pass_type_id, serial_number)
        return Response(status_code=200)

    @_terminal_response
    def list_serials(
        self,
        device_library_id: str,
        pass_type_id: str,
        passes_updated_since: str | None = None,
    ) -> Response:
        """Serial numbers a device holds, as a JSON array, or ``{}`` when none.

        Wallet does not always send an Authorization header here, so none
        is required.
        """
        try:
            serials = self.registry.list_serials_for_device(device_library_id, pass_type_id)
        except Exception as e:
            logger.error(f"[{self.name}] Failed to list passes for device {device_library_id[:8]}...: {e}")
            serials = []

        since = parse_updated_since(passes_updated_since)
        if serials and since:
            serials = [serial for serial in serials if self._updated_since(serial, since)]

        if not serials:
            return JSONResponse(content={})
        return JSONResponse(content=serials)

    def _updated_since(self, serial_number: str, since: datetime) -> bool:
        try:
            state = self.load_state(serial_number)
        except Exception as e:
            # Same as an unknown modification time
            logger.error(f"[{self.name}] Failed to load pass {serial_number[:8]}... for listing: {e}")
            return True
        if state is None:
            return False
        # Unknown modification time: let Wallet fetch and decide
        if state.last_modified_at is None:
            return True
        return state.last_modified_at > since

    @_terminal_response
    def fetch_pass(
        self,
        pass_type_id: str,
        serial_number: str,
        authorization: str | None,
        if_modified_since: str | None = None,
    ) -> Response:
        """Return the latest pass, or 304 when the device copy is current."""
        self._authenticate(authorization, serial_number)

        if pass_type_id != self.pass_type_id:
            raise NotFound("Unknown pass type")

        state = self.load_state(serial_number)
        if state is None:
            raise NotFound("Pass not found")

        last_modified = state.last_modified_at
        if is_not_modified(last_modified, parse_if_modified_since(if_modified_since)):
            return Response(status_code=304)

        pass_data = self.create_generator().generate_pass(state)

        headers = {}
        if last_modified:
            headers["Last-Modified"] = http_date(last_modified)

        logger.info(f"[{self.name}] Served pass {serial_number[:8]}...")
        return Response(content=pass_data, media_type=PKPASS_MEDIA_TYPE, headers=headers)

    def receive_log(self, body: bytes | str | None) -> Response:
        """Record Wallet diagnostics. Always 200."""
        try:
            for entry in _log_entries(body):
                logger.warning(f"[{self.name}] Wallet log: {entry}")
        except Exception as e:
            logger.error(f"[{self.name}] Unreadable Wallet log payload: {e}")
        return Response(status_code=200)


def _log_entries(body: bytes | str | None) -> list[str]:
    if body is None:
        return []
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    text = body.strip()
    if not text:
        return []

    try:
        parsed = json.loads(text)
    except ValueError:
        return [text]

    if isinstance(parsed, dict) and isinstance(parsed.get("logs"), list):
        return [str(entry) for entry in parsed["logs"]]
    return [text]
