# api/archive/routers_auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .auth import (
    authenticate,
    create_access_token,
    get_current_admin,
    get_password_hash,
    verify_password,
)
from .database import get_db
from .models import Admin, utcnow
from .ratelimit import RateLimiter, get_login_limiter
from .schemas import AdminBrief, AdminOut, LoginIn, ProfileUpdate, TokenOut
from .utils import client_ip, log_admin_action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------- Login ----------


@router.post("/login", response_model=TokenOut)
def login(
    payload: LoginIn,
    request: Request,
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_login_limiter),
):
    """
    Authenticates an admin and returns a bearer token.
    - only failed attempts count towards the per-IP limit
    - once the limit is reached, credentials are not even checked
    - a successful login clears the counter
    """
    ip = client_ip(request)
    if limiter.is_limited(ip):
        logger.warning("login throttled for %s", ip)
        raise HTTPException(status_code=429, detail="Too many login attempts, please try again later.")

    admin = authenticate(db, payload.username.strip(), payload.password)
    if admin is None:
        attempts = limiter.hit(ip)
        logger.info("failed login for %r from %s (%d)", payload.username, ip, attempts)
        raise HTTPException(status_code=401, detail="Invalid credentials")

    limiter.reset(ip)
    admin.last_login = utcnow()
    log_admin_action(db, admin=admin, action="login", target_type="admin", target_id=admin.id)
    db.commit()
    db.refresh(admin)

    return TokenOut(
        token=create_access_token(admin),
        admin=AdminBrief.model_validate(admin),
    )


@router.get("/verify")
def verify(admin: Admin = Depends(get_current_admin)):
    """Checks the token for the admin front end."""
    return {"valid": True, "admin": AdminBrief.model_validate(admin).model_dump()}


# ---------- Own profile ----------


@router.get("/profile", response_model=AdminOut)
def get_profile(admin: Admin = Depends(get_current_admin)):
    return admin


@router.put("/profile", response_model=AdminOut)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(get_current_admin),
):
    """
    - email: must stay unique
    - newPassword: requires currentPassword
    """
    if payload.email is not None and payload.email != admin.email:
        existing = (
            db.query(Admin)
            .filter(Admin.email == payload.email, Admin.id != admin.id)
            .first()
        )
        if existing:
            raise HTTPException(status_code=400, detail="Email already in use")
        admin.email = payload.email

    if payload.newPassword is not None:
        if not payload.currentPassword or not verify_password(payload.currentPassword, admin.password_hash):
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        admin.password_hash = get_password_hash(payload.newPassword)

    admin.updated_at = utcnow()
    log_admin_action(db, admin=admin, action="update_profile", target_type="admin", target_id=admin.id)
    db.commit()
    db.refresh(admin)
    return admin
