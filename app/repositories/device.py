from datetime import datetime, timezone

from database.connection import get_db, with_retry

REGISTRATION_KEY = "device_library_identifier,pass_type_identifier,serial_number"


class DeviceRepository:
    """Repository for Apple Wallet device registrations (``pass_registrations``)."""

    @staticmethod
    @with_retry()
    def upsert(
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        push_token: str | None,
    ) -> None:
        """Insert or refresh a registration; the composite key is unique."""
        db = get_db()
        db.table("pass_registrations").upsert({
            "device_library_identifier": device_library_id,
            "pass_type_identifier": pass_type_id,
            "serial_number": serial_number,
            "push_token": push_token,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }, on_conflict=REGISTRATION_KEY).execute()

    @staticmethod
    @with_retry()
    def delete(device_library_id: str, pass_type_id: str, serial_number: str) -> int:
        """Delete a registration. Returns the number of rows removed."""
        db = get_db()
        result = db.table("pass_registrations").delete().eq(
            "device_library_identifier", device_library_id
        ).eq("pass_type_identifier", pass_type_id).eq(
            "serial_number", serial_number
        ).execute()
        return len(result.data) if result and result.data else 0

    @staticmethod
    @with_retry()
    def get_serial_numbers_for_device(device_library_id: str, pass_type_id: str) -> list[str]:
        """Get all serial numbers registered to a device for one pass type."""
        db = get_db()
        result = db.table("pass_registrations").select("serial_number").eq(
            "device_library_identifier", device_library_id
        ).eq("pass_type_identifier", pass_type_id).execute()
        return [row["serial_number"] for row in result.data] if result and result.data else []

    @staticmethod
    @with_retry()
    def get_devices_for_serial(serial_number: str, pass_type_id: str) -> list[dict]:
        """Get registrations holding a push token for a pass."""
        db = get_db()
        result = db.table("pass_registrations").select(
            "device_library_identifier, push_token"
        ).eq("serial_number", serial_number).eq(
            "pass_type_identifier", pass_type_id
        ).not_.is_("push_token", "null").execute()
        return result.data if result and result.data else []
