from typing import Callable

from fastapi import Depends

from .dependencies import get_current_user
from .error_handlers import ForbiddenError, UnauthorizedError, get_error_message
from ..models.user import ROLE_ADMIN, ROLE_COMMITTEE, ROLE_STUDENT

_ROLE_DENIED = {
    ROLE_STUDENT: "students_only",
    ROLE_COMMITTEE: "committee_only",
    ROLE_ADMIN: "admin_only",
}


def _role_of(user) -> str | None:  # noqa: ANN001
    if isinstance(user, dict):
        return user.get("role")
    return getattr(user, "role", None)


def ensure_capability(
    user,  # noqa: ANN001
    required_role: str,
    owns: Callable[[object], bool] | None = None,
    *,
    allow_admin: bool = False,
    denied_message: str | None = None,
):
    """
    Single authorization gate for the scheduler and the HTTP layer.

    `user` is either a decoded token dict or a `User` row. Admins satisfy the role
    check only when `allow_admin` is set; the ownership predicate always applies.
    """
    if user is None:
        raise UnauthorizedError(get_error_message("unauthorized"))

    role = _role_of(user)
    if role != required_role and not (allow_admin and role == ROLE_ADMIN):
        raise ForbiddenError(get_error_message(_ROLE_DENIED.get(required_role, "forbidden")))

    if owns is not None and not owns(user):
        raise ForbiddenError(denied_message or get_error_message("forbidden"))
    return user


def _role_required(required_role: str, *, allow_admin: bool = False):
    def check_role(user=Depends(get_current_user)):
        return ensure_capability(user, required_role, allow_admin=allow_admin)
    return check_role


student_only = _role_required(ROLE_STUDENT)
committee_only = _role_required(ROLE_COMMITTEE, allow_admin=True)
admin_only = _role_required(ROLE_ADMIN)
