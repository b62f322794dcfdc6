import uuid

from jose import ExpiredSignatureError, JWTError, jwt

from .exceptions import UnauthorizedError
from .settings import settings


def decode_access_token(token: str) -> uuid.UUID:
    if not settings.JWT_SECRET_KEY:
        raise UnauthorizedError("Token verification is not configured")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
    except ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except JWTError:
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub") or payload.get("id")
    if not user_id:
        raise UnauthorizedError("Token missing user ID")

    try:
        return uuid.UUID(str(user_id))
    except ValueError:
        raise UnauthorizedError("Invalid user ID format in token")


def extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
