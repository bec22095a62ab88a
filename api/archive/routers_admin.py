# api/archive/routers_admin.py
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    Response,
    status,
)
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import false, true

from .auth import get_password_hash, require_admin, require_super_admin
from .config import settings
from .crud import create_martyr, get_martyr_or_404, martyr_select, reject_invalid
from .database import get_db
from .models import Admin, AdminLog, Martyr, Tribute, utcnow
from .schemas import (
    AdminCreate,
    AdminLogOut,
    AdminOut,
    AdminUpdate,
    MartyrAdminOut,
    TributeAdminOut,
)
from .utils import (
    RecordId,
    clamp_pagination,
    ensure_dir,
    log_admin_action,
    paginate,
    pagination_meta,
    parse_bool,
    read_payload,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------- Helpers ----------


def ensure_super_admin(db: Session):
    """
    Creates the bootstrap super admin from ADMIN_USERNAME / ADMIN_EMAIL /
    ADMIN_PASSWORD if no account with that username exists yet.
    Skipped when ADMIN_PASSWORD is not set.
    """
    if not settings.ADMIN_PASSWORD:
        return None
    admin = db.query(Admin).filter(Admin.username == settings.ADMIN_USERNAME).first()
    if admin:
        return admin
    admin = Admin(
        username=settings.ADMIN_USERNAME,
        email=settings.ADMIN_EMAIL,
        password_hash=get_password_hash(settings.ADMIN_PASSWORD),
        role="super_admin",
    )
    db.add(admin)
    db.commit()
    logger.info("bootstrap super admin %r created", admin.username)
    return admin


def _get_admin_or_404(db: Session, admin_id: int) -> Admin:
    account = db.get(Admin, admin_id)
    if not account:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin not found")
    return account


def _dump_martyrs(db: Session) -> list:
    rows = db.execute(
        select(Martyr).order_by(Martyr.date_of_martyrdom.desc(), Martyr.id.asc())
    ).scalars()
    return [MartyrAdminOut.model_validate(m).model_dump(mode="json") for m in rows]


def _dump_tributes(db: Session) -> list:
    rows = db.execute(select(Tribute).order_by(Tribute.id.asc())).scalars()
    return [TributeAdminOut.model_validate(t).model_dump(mode="json") for t in rows]


# ---------- Dashboard ----------


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), admin: Admin = Depends(require_admin)):
    """Quick stats plus what happened over the last 7 days."""
    week_ago = utcnow() - timedelta(days=7)

    total_martyrs = db.scalar(select(func.count(Martyr.id)))
    pending_martyrs = db.scalar(select(func.count(Martyr.id)).where(Martyr.status == "pending"))
    total_tributes = db.scalar(select(func.count(Tribute.id)))
    pending_tributes = db.scalar(select(func.count(Tribute.id)).where(Tribute.is_approved == false()))
    recent_martyrs = db.scalar(select(func.count(Martyr.id)).where(Martyr.created_at >= week_ago))
    active_admins = db.scalar(select(func.count(Admin.id)).where(Admin.is_active == true()))

    new_martyrs = db.execute(
        select(Martyr)
        .where(Martyr.created_at >= week_ago)
        .order_by(Martyr.created_at.desc(), Martyr.id.asc())
        .limit(10)
    ).scalars()
    new_tributes = db.execute(
        select(Tribute, Martyr.name_ar)
        .join(Martyr, Tribute.martyr_id == Martyr.id)
        .where(Tribute.created_at >= week_ago)
        .order_by(Tribute.created_at.desc(), Tribute.id.asc())
        .limit(10)
    ).all()

    activity = [
        {"type": "martyr", "id": m.id, "title": m.name_ar, "created_at": m.created_at}
        for m in new_martyrs
    ] + [
        {"type": "tribute", "id": t.id, "title": f"Tribute for {name_ar}", "created_at": t.created_at}
        for t, name_ar in new_tributes
    ]
    activity.sort(key=lambda a: a["created_at"], reverse=True)

    return {
        "quickStats": {
            "totalMartyrs": total_martyrs,
            "pendingMartyrs": pending_martyrs,
            "pendingTributes": pending_tributes,
            "totalTributes": total_tributes - pending_tributes,
            "recentMartyrs": recent_martyrs,
        },
        "recentActivity": activity[:10],
        "systemHealth": {
            "total_martyrs": total_martyrs,
            "total_tributes": total_tributes,
            "active_admins": active_admins,
            "pending_tributes": pending_tributes,
        },
    }


# ---------- Martyrs (all statuses) ----------


@router.get("/martyrs")
def admin_list_martyrs(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    search: Optional[str] = Query(default=None),
    place: Optional[str] = Query(default=None),
    education_level: Optional[str] = Query(default=None),
    approved: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """
    Paginated list of every record, newest submission first.
    - approved=true|false : boolean view of the status
    - status=pending|approved|rejected : exact status (wins over approved)
    """
    if status_filter is not None and status_filter not in ("pending", "approved", "rejected"):
        reject_invalid(["Status must be one of: pending, approved, rejected"])
    page, limit = clamp_pagination(page, limit)
    stmt = martyr_select(
        search=search,
        place=place,
        education_level=education_level,
        status=status_filter,
        approved=parse_bool(approved),
        admin_order=True,
    )
    rows, pagination = paginate(db, stmt, page, limit)
    return {
        "martyrs": [MartyrAdminOut.model_validate(m).model_dump(mode="json") for m in rows],
        "pagination": pagination,
    }


@router.get("/martyrs/{martyr_id}", response_model=MartyrAdminOut)
def admin_get_martyr(
    martyr_id: RecordId,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    return get_martyr_or_404(db, martyr_id)


@router.post("/martyrs", response_model=MartyrAdminOut, status_code=status.HTTP_201_CREATED)
async def admin_create_martyr(
    request: Request,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """
    Same payload as the public submission, plus an optional
    ``status`` or ``approved`` so a record can be published directly.
    """
    fields, photo = await read_payload(request)

    record_status = fields.get("status")
    if record_status is None:
        record_status = "approved" if parse_bool(fields.get("approved")) else "pending"
    elif record_status not in ("pending", "approved", "rejected"):
        reject_invalid(["Status must be one of: pending, approved, rejected"])

    return await create_martyr(db, fields, photo, status=record_status, admin=admin)


# ---------- Admin accounts (super admin only) ----------


@router.get("/admins", response_model=List[AdminOut])
def list_admins(db: Session = Depends(get_db), admin: Admin = Depends(require_super_admin)):
    return db.query(Admin).order_by(Admin.created_at.desc(), Admin.id.asc()).all()


@router.post("/admins", response_model=AdminOut, status_code=status.HTTP_201_CREATED)
def create_admin(
    payload: AdminCreate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_super_admin),
):
    existing = (
        db.query(Admin)
        .filter((Admin.username == payload.username) | (Admin.email == payload.email))
        .first()
    )
    if existing:
        raise HTTPException(status_code=400, detail="An admin with this username or email already exists")

    account = Admin(
        username=payload.username,
        email=payload.email,
        password_hash=get_password_hash(payload.password),
        role=payload.role,
    )
    db.add(account)
    db.flush()
    log_admin_action(db, admin=admin, action="create", target_type="admin", target_id=account.id, detail=account.username)
    db.commit()
    db.refresh(account)
    return account


@router.get("/admins/{admin_id}", response_model=AdminOut)
def get_admin(
    admin_id: RecordId,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_super_admin),
):
    return _get_admin_or_404(db, admin_id)


@router.put("/admins/{admin_id}", response_model=AdminOut)
def update_admin(
    admin_id: RecordId,
    payload: AdminUpdate,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_super_admin),
):
    """
    - email : must stay unique
    - password : re-hashed when given
    - role / is_active : never on your own account
    """
    account = _get_admin_or_404(db, admin_id)

    if payload.email is not None and payload.email != account.email:
        existing = (
            db.query(Admin)
            .filter(Admin.email == payload.email, Admin.id != admin_id)
            .first()
        )
        if existing:
            raise HTTPException(status_code=400, detail="Email already in use")
        account.email = payload.email

    if payload.password is not None:
        account.password_hash = get_password_hash(payload.password)

    if payload.role is not None and payload.role != account.role:
        if account.id == admin.id:
            raise HTTPException(status_code=400, detail="You cannot change your own role")
        account.role = payload.role

    if payload.is_active is not None and payload.is_active != account.is_active:
        if account.id == admin.id:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
        account.is_active = payload.is_active

    account.updated_at = utcnow()
    log_admin_action(db, admin=admin, action="update", target_type="admin", target_id=account.id, detail=account.username)
    db.commit()
    db.refresh(account)
    return account


@router.patch("/admins/{admin_id}/toggle", response_model=AdminOut)
def toggle_admin(
    admin_id: RecordId,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_super_admin),
):
    """Flips is_active. Tokens of a deactivated admin stop working at once."""
    account = _get_admin_or_404(db, admin_id)
    if account.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    account.is_active = not account.is_active
    account.updated_at = utcnow()
    log_admin_action(
        db,
        admin=admin,
        action="activate" if account.is_active else "deactivate",
        target_type="admin",
        target_id=account.id,
        detail=account.username,
    )
    db.commit()
    db.refresh(account)
    return account


@router.delete("/admins/{admin_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_admin(
    admin_id: RecordId,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_super_admin),
):
    account = _get_admin_or_404(db, admin_id)
    if account.id == admin.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    log_admin_action(db, admin=admin, action="delete", target_type="admin", target_id=account.id, detail=account.username)
    db.delete(account)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Settings / logs (super admin only) ----------


@router.get("/settings")
def get_settings(admin: Admin = Depends(require_super_admin)):
    """Effective configuration, without secrets or connection strings."""
    return {
        "siteName": "Martyrs Archive",
        "maxFileSize": f"{settings.MAX_UPLOAD_MB}MB",
        "imageMaxDimension": settings.IMAGE_MAX_DIMENSION,
        "imageQuality": settings.IMAGE_QUALITY,
        "requireAdminApproval": True,
        "autoApproveTributes": False,
        "maxTributesPerDay": 1,
        "tributeWindowHours": settings.TRIBUTE_WINDOW_HOURS,
        "loginMaxAttempts": settings.LOGIN_MAX_ATTEMPTS,
        "loginWindowMinutes": settings.LOGIN_WINDOW_MINUTES,
        "tokenLifetimeMinutes": settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        "statsCacheSeconds": settings.STATS_CACHE_SECONDS,
        "sharedRateLimiter": bool(settings.REDIS_URL),
        "corsOrigins": settings.CORS_ORIGINS,
    }


@router.get("/logs")
def list_logs(
    action: Optional[str] = Query(default=None),
    target_type: Optional[str] = Query(default=None),
    username: Optional[str] = Query(default=None),
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_super_admin),
):
    """
    Audit trail: who did what to which record, newest first.
    Filters: action, target_type, username (substring).
    """
    page, limit = clamp_pagination(page, limit, default_limit=50)
    stmt = select(AdminLog, Admin.username).outerjoin(Admin, AdminLog.admin_id == Admin.id)

    conds = []
    if action:
        conds.append(AdminLog.action == action)
    if target_type:
        conds.append(AdminLog.target_type == target_type)
    if username:
        conds.append(Admin.username.ilike(f"%{username}%"))
    if conds:
        stmt = stmt.where(and_(*conds))

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.order_by(AdminLog.created_at.desc(), AdminLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    logs = [
        AdminLogOut(
            id=log.id,
            action=log.action,
            target_type=log.target_type,
            target_id=log.target_id,
            detail=log.detail,
            admin_username=admin_username,
            created_at=log.created_at,
        ).model_dump(mode="json")
        for log, admin_username in rows
    ]
    return {"logs": logs, "pagination": pagination_meta(page, limit, total)}


# ---------- Backup / export ----------


@router.get("/backup")
def list_backups(admin: Admin = Depends(require_super_admin)):
    backup_dir = Path(settings.BACKUP_DIR)
    files = sorted(backup_dir.glob("backup-*.json"), reverse=True) if backup_dir.is_dir() else []
    backups = [
        {
            "filename": p.name,
            "size": p.stat().st_size,
            "created_at": datetime.fromtimestamp(p.stat().st_mtime).isoformat(),
        }
        for p in files
    ]
    return {
        "backups": backups,
        "lastBackup": backups[0]["created_at"] if backups else None,
        "backupLocation": str(backup_dir),
    }


@router.post("/backup", status_code=status.HTTP_201_CREATED)
def create_backup(db: Session = Depends(get_db), admin: Admin = Depends(require_super_admin)):
    """JSON snapshot of every martyr and tribute, written to BACKUP_DIR."""
    now = utcnow()
    martyrs = _dump_martyrs(db)
    tributes = _dump_tributes(db)
    document = {
        "createdAt": now.isoformat(),
        "createdBy": admin.username,
        "martyrs": martyrs,
        "tributes": tributes,
    }

    filename = f"backup-{now.strftime('%Y%m%d-%H%M%S-%f')}.json"
    try:
        ensure_dir(settings.BACKUP_DIR)
        path = Path(settings.BACKUP_DIR) / filename
        path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
    except OSError:
        logger.exception("backup to %s failed", settings.BACKUP_DIR)
        raise HTTPException(status_code=500, detail="Backup failed")

    log_admin_action(db, admin=admin, action="backup", detail=filename)
    db.commit()
    logger.info("backup %s written (%d martyrs, %d tributes)", filename, len(martyrs), len(tributes))
    return {
        "message": "Backup created successfully",
        "filename": filename,
        "martyrs": len(martyrs),
        "tributes": len(tributes),
    }


@router.get("/export")
def export_martyrs(
    format: str = Query(default="json"),
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    if format != "json":
        raise HTTPException(status_code=400, detail="Unsupported export format")
    data = _dump_martyrs(db)
    return {
        "exportDate": utcnow().isoformat(),
        "totalRecords": len(data),
        "data": data,
    }
