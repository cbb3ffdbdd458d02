"""
Bearer token verification and role dependencies.

Tokens are HS256 JWTs carrying ``userId`` and ``exp``, as issued by the auth
service. This module only verifies them; ``create_access_token`` is kept for
the data loader and tests.
"""

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from oapoint import config
from oapoint.database import get_db
from oapoint.errors import Forbidden, Unauthorized
from oapoint.logging_config import get_logger, log_with_context
from oapoint.models.user import User
from oapoint.timeutils import utcnow

logger = get_logger("http")


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = utcnow() + (expires_delta or timedelta(hours=config.ACCESS_TOKEN_EXPIRE_HOURS))
    return jwt.encode({"userId": user_id, "exp": expire}, config.JWT_SECRET,
                      algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthorized("Your session has expired. Please login again.")
    except JWTError:
        raise Unauthorized("Invalid authentication token.")


def get_current_user(authorization: Optional[str] = Header(None),
                     db: Session = Depends(get_db)) -> User:
    if not authorization:
        raise Unauthorized()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Invalid authentication scheme.")

    payload = decode_token(token)
    user_id = payload.get("userId")
    if not user_id:
        raise Unauthorized("Invalid token payload.")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        log_with_context(logger, "WARNING", "Token for unknown or inactive user",
                         context={"user_id": str(user_id)})
        raise Unauthorized("Token is not valid.")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise Forbidden("Access denied. Admin only.")
    return user


def require_student(user: User = Depends(get_current_user)) -> User:
    if not user.is_student:
        raise Forbidden("Access denied. Students only.")
    return user
