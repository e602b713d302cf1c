from database.connection import get_db, with_retry


class TransactionRepository:

    @staticmethod
    @with_retry()
    def create(
        customer_id: str,
        type: str,
        points_change: int,
        points_balance_after: int,
        employee_id: str | None = None,
        reward_type: str | None = None,
        reward_points_threshold: int | None = None,
    ) -> dict | None:
        """Create a purchase or redemption record."""
        db = get_db()
        data = {
            "customer_id": customer_id,
            "employee_id": employee_id,
            "type": type,
            "points_change": points_change,
            "points_balance_after": points_balance_after,
            "reward_type": reward_type,
            "reward_points_threshold": reward_points_threshold,
        }
        result = db.table("transactions").insert(data).execute()
        return result.data[0] if result and result.data else None
