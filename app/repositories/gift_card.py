from app.domain.schemas import GiftCardPassState
from database.connection import get_db, with_retry


class GiftCardRepository:

    @staticmethod
    @with_retry()
    def get_by_serial(serial_number: str) -> dict | None:
        """Get a gift card by its pass serial number."""
        db = get_db()
        result = db.table("gift_cards").select("*").eq(
            "serial_number", serial_number
        ).limit(1).execute()
        return result.data[0] if result and result.data else None

    @staticmethod
    def get_pass_state(serial_number: str) -> GiftCardPassState | None:
        gift_card = GiftCardRepository.get_by_serial(serial_number)
        return GiftCardPassState.from_record(gift_card) if gift_card else None
