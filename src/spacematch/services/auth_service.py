"""Authentication helpers: bearer token verification.

Tokens are issued by the identity service; this backend only verifies them.
"""

from jose import JWTError, jwt

from spacematch.app.config import get_settings


def decode_token(token: str) -> dict | None:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
