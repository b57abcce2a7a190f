from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .error_handlers import UnauthorizedError, get_error_message
from .jwt import decode_access_token

_bearer = HTTPBearer(auto_error=False)


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> dict | None:
    if credentials is None or not credentials.credentials:
        return None
    return decode_access_token(credentials.credentials)


def get_current_user(user: dict | None = Depends(get_optional_user)) -> dict:
    if not user:
        raise UnauthorizedError(get_error_message("unauthorized"))
    return user


def caller_id(user: dict) -> int:
    return int(user.get("sub"))


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"
