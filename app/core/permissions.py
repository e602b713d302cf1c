from fastapi import Depends, HTTPException, status

from app.core.security import require_auth
from app.repositories.employee import EmployeeRepository


class EmployeeContext:
    """Context object for the employee performing a request."""

    def __init__(self, employee: dict):
        self.employee = employee
        self.id = employee["id"]
        self.role = employee.get("role", "employee")


def require_role(role: str | None = None):
    """Dependency factory to verify the caller is an employee.

    Args:
        role: Optional required role ('admin'). If None, any employee is accepted.
    """

    def dependency(auth_payload: dict = Depends(require_auth)) -> EmployeeContext:
        auth_id = auth_payload.get("sub")
        if not auth_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token payload: missing sub claim",
            )

        employee = EmployeeRepository.get_by_id(auth_id)
        if not employee or not employee.get("is_active", True):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Employee access required",
            )

        if role and employee.get("role") != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"This action requires '{role}' role",
            )

        return EmployeeContext(employee)

    return dependency


require_employee = require_role()
