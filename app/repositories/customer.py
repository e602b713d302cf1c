from datetime import datetime, timezone

from app.domain.schemas import CustomerPassState, RedeemedRewards
from database.connection import get_db, with_retry, update_with_schema_fallback


class CustomerRepository:
    """Loyalty state stored on the ``profiles`` table (id = pass serial number)."""

    @staticmethod
    @with_retry()
    def get_by_id(customer_id: str) -> dict | None:
        """Get a customer profile by ID."""
        db = get_db()
        result = db.table("profiles").select("*").eq("id", customer_id).limit(1).execute()
        return result.data[0] if result and result.data else None

    @staticmethod
    def get_pass_state(serial_number: str) -> CustomerPassState | None:
        customer = CustomerRepository.get_by_id(serial_number)
        return CustomerPassState.from_record(customer) if customer else None

    @staticmethod
    @with_retry()
    def update_pass_state(
        customer_id: str,
        points_balance: int | None = None,
        total_purchases: int | None = None,
        redeemed_rewards: RedeemedRewards | None = None,
    ) -> dict | None:
        """Write balance and/or redemptions and bump ``updated_at``.

        ``updated_at`` is what Wallet's If-Modified-Since is compared
        against. It is dropped on a single retry if the schema cache
        rejects it.
        """
        values: dict = {}
        if points_balance is not None:
            values["points_balance"] = points_balance
        if total_purchases is not None:
            values["total_purchases"] = total_purchases
        if redeemed_rewards is not None:
            values["redeemed_rewards"] = redeemed_rewards.to_record()
        values["updated_at"] = datetime.now(timezone.utc).isoformat()

        rows = update_with_schema_fallback(
            "profiles",
            match={"id": customer_id},
            values=values,
            optional_column="updated_at",
        )
        return rows[0] if rows else None
