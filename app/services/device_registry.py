"""
Device registrations for installed passes.

Wallet retries any non-2xx registration aggressively, so write failures
are logged here and reported as success; the next registration call
repairs the row.
"""

import json
import logging
from dataclasses import dataclass

from app.repositories.device import DeviceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredDevice:
    device_library_id: str
    push_token: str


def unwrap_push_token(body: bytes | str | dict | None) -> str | None:
    """Extract the push token from a registration body.

    Wallet sends ``{"pushToken": "..."}``; some callers send the bare token
    or a JSON-encoded string.
    """
    if body is None:
        return None
    if isinstance(body, dict):
        token = body.get("pushToken")
        if not isinstance(token, str):
            return None
        return token.strip() or None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")

    text = body.strip()
    if not text:
        return None

    if text[0] in "{\"":
        try:
            parsed = json.loads(text)
        except ValueError:
            return text
        if isinstance(parsed, (dict, str)):
            return unwrap_push_token(parsed)
        return None

    return text


class DeviceRegistry:

    def __init__(self, repository: type[DeviceRepository] = DeviceRepository):
        self.repository = repository

    def register(
        self,
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        push_token: bytes | str | dict | None,
    ) -> bool:
        """Upsert a registration. Always returns True (created)."""
        token = unwrap_push_token(push_token)
        try:
            self.repository.upsert(device_library_id, pass_type_id, serial_number, token)
            logger.info(
                f"Pass {serial_number[:8]}... registered on device {device_library_id[:8]}... "
                f"(push token {'present' if token else 'missing'})"
            )
        except Exception as e:
            logger.error(f"Failed to store registration for pass {serial_number[:8]}...: {e}")
        return True

    def unregister(self, device_library_id: str, pass_type_id: str, serial_number: str) -> None:
        """Remove a registration; unknown keys and store errors are not errors."""
        try:
            removed = self.repository.delete(device_library_id, pass_type_id, serial_number)
        except Exception as e:
            logger.error(f"Failed to delete registration for pass {serial_number[:8]}...: {e}")
            return

        if removed:
            logger.info(f"Pass {serial_number[:8]}... unregistered from device {device_library_id[:8]}...")
        else:
            logger.info(f"No registration to remove for pass {serial_number[:8]}... on device {device_library_id[:8]}...")

    def list_serials_for_device(self, device_library_id: str, pass_type_id: str) -> list[str]:
        """Serial numbers held by a device, deduplicated, in stored order."""
        serials = self.repository.get_serial_numbers_for_device(device_library_id, pass_type_id)
        return list(dict.fromkeys(serials))

    def list_devices_for_serial(self, serial_number: str, pass_type_id: str) -> list[RegisteredDevice]:
        """Devices holding a pass that can receive a push."""
        rows = self.repository.get_devices_for_serial(serial_number, pass_type_id)
        return [
            RegisteredDevice(row["device_library_identifier"], row["push_token"].strip())
            for row in rows
            if isinstance(row.get("push_token"), str) and row["push_token"].strip()
        ]
