import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .models import Admin

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# auto_error=False so a missing header gets our own message, not FastAPI's
bearer_scheme = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(admin: Admin, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "sub": str(admin.id),
        "adminId": admin.id,
        "username": admin.username,
        "role": admin.role,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def _auth_error(code: int, message: str) -> HTTPException:
    return HTTPException(
        status_code=code,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> dict:
    """Signature + expiry check. Raises the HTTP error the client should see."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "Token expired")
    except JWTError:
        raise _auth_error(status.HTTP_403_FORBIDDEN, "Invalid token")


def admin_from_token(token: Optional[str], db: Session) -> Admin:
    """
    Validate a bearer token and reload its admin. A deleted or deactivated
    admin is rejected even while the token itself has not expired.
    """
    if not token:
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "Access token required")

    payload = decode_token(token)
    admin_id = payload.get("adminId", payload.get("sub"))
    try:
        admin_id = int(admin_id)
    except (TypeError, ValueError):
        raise _auth_error(status.HTTP_403_FORBIDDEN, "Invalid token")

    admin = db.get(Admin, admin_id)
    if admin is None or not admin.is_active:
        logger.info("rejected token for missing or inactive admin %s", admin_id)
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return admin


def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Admin:
    """Authenticates from the ``Authorization: Bearer <token>`` header."""
    token = credentials.credentials if credentials else None
    return admin_from_token(token, db)


def get_optional_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[Admin]:
    """
    Like get_current_admin, but anonymous callers get None instead of a 401.
    A stale or broken token is treated as anonymous too.
    """
    if credentials is None:
        return None
    try:
        return admin_from_token(credentials.credentials, db)
    except HTTPException:
        return None


def require_admin(admin: Admin = Depends(get_current_admin)) -> Admin:
    if admin.role not in ("admin", "super_admin"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return admin


def require_super_admin(admin: Admin = Depends(get_current_admin)) -> Admin:
    """Settings, logs, backups and account management."""
    if admin.role != "super_admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin privileges required")
    return admin


def authenticate(db: Session, username: str, password: str) -> Optional[Admin]:
    """Active admin matching username (or e-mail) and password, else None."""
    admin = (
        db.query(Admin)
        .filter((Admin.username == username) | (Admin.email == username))
        .first()
    )
    if admin is None or not admin.is_active:
        return None
    if not verify_password(password, admin.password_hash):
        return None
    return admin
