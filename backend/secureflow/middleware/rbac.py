"""
Role-based access control.

Roles form a strict hierarchy; a caller may perform an operation when their
role ranks at or above the role it requires. Unknown or missing roles rank
as VIEWER.
"""

from enum import IntEnum
from typing import Any, Union

from fastapi import Depends

from secureflow.middleware.auth import get_current_user
from secureflow.services.pipeline_exceptions import ForbiddenError


class Role(IntEnum):
    VIEWER = 0
    DEVELOPER = 1
    SECURITY_ANALYST = 2
    ADMIN = 3

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Lenient parse for caller roles: anything unrecognised is VIEWER."""
        if isinstance(value, Role):
            return value
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper(), cls.VIEWER)
        return cls.VIEWER


def _required(role: Union[Role, str]) -> Role:
    # Required roles come from code or settings, so a typo must fail loudly
    if isinstance(role, Role):
        return role
    return Role[role.strip().upper()]


def has_role(user_role: Any, required: Union[Role, str]) -> bool:
    return Role.parse(user_role) >= _required(required)


def check_role(user_role: Any, required: Union[Role, str]) -> None:
    """Raise ForbiddenError unless ``user_role`` satisfies ``required``."""
    needed = _required(required)
    if not has_role(user_role, needed):
        raise ForbiddenError(needed.name, Role.parse(user_role).name)


class RequireRole:
    """
    FastAPI dependency gating an endpoint on a minimum role.

    Usage:
        current_user: dict = Depends(RequireRole(Role.DEVELOPER))
    """

    def __init__(self, required: Union[Role, str]):
        self.required = _required(required)

    def __call__(self, current_user: dict = Depends(get_current_user)) -> dict:
        check_role(current_user.get("role"), self.required)
        return current_user
