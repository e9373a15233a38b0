from fastapi import Header
from typing import Optional

from car_rental.errors import UnauthenticatedError


def get_current_user(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> int:
    """Resolve the caller from the identity header set by the upstream auth layer."""
    if not x_user_id:
        raise UnauthenticatedError()
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise UnauthenticatedError()
    if user_id <= 0:
        raise UnauthenticatedError()
    return user_id
