from database.connection import get_db, with_retry


class EmployeeRepository:

    @staticmethod
    @with_retry()
    def get_by_id(employee_id: str) -> dict | None:
        """Get an employee by auth user ID."""
        db = get_db()
        result = db.table("employees").select("*").eq("id", employee_id).limit(1).execute()
        return result.data[0] if result and result.data else None
