from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from tracker.core.config import Settings


# --------------------------------------------------------------------
# Password hashing
# --------------------------------------------------------------------
def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


# --------------------------------------------------------------------
# Access tokens
# --------------------------------------------------------------------
class InvalidTokenError(Exception):
    pass


def create_access_token(email: str, settings: Settings, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {"sub": email, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> str:
    """Return the email carried by a valid token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise InvalidTokenError("Invalid or expired access token") from e

    email = payload.get("sub")
    if not email:
        raise InvalidTokenError("Token has no subject")
    return email
