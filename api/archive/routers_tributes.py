# api/archive/routers_tributes.py
import logging
from collections import Counter
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import false, true

from .auth import admin_from_token, bearer_scheme, get_optional_admin, require_admin
from .config import settings
from .crud import get_martyr_or_404, reject_invalid
from .database import get_db
from .models import INT_MAX, Admin, Martyr, Tribute, utcnow
from .schemas import BulkApproveIn, MessageOut, TributeAdminOut, TributeOut
from .utils import (
    RecordId,
    clamp_pagination,
    client_ip,
    log_admin_action,
    paginate,
    read_payload,
)
from .validation import clean_tribute_fields, validate_tribute

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tributes", tags=["tributes"])

ALREADY_HANDLED = "Tribute not found or already approved"


def _martyr_brief(m: Martyr) -> dict:
    return {
        "id": m.id,
        "name_ar": m.name_ar,
        "name_en": m.name_en,
        "place_of_martyrdom": m.place_of_martyrdom,
    }


# ---------- Public ----------


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_tribute(request: Request, db: Session = Depends(get_db)):
    """
    Public tribute. Stored unapproved; one per martyr per source IP over
    ``TRIBUTE_WINDOW_HOURS``.
    """
    fields, _ = await read_payload(request)
    reject_invalid(validate_tribute(fields))
    values = clean_tribute_fields(fields)

    get_martyr_or_404(db, values["martyr_id"], approved_only=True)

    ip = client_ip(request)
    since = utcnow() - timedelta(hours=settings.TRIBUTE_WINDOW_HOURS)
    recent = db.execute(
        select(Tribute.id)
        .where(
            Tribute.martyr_id == values["martyr_id"],
            Tribute.ip_address == ip,
            Tribute.created_at > since,
        )
        .limit(1)
    ).first()
    if recent is not None:
        logger.info("tribute throttled for martyr %s from %s", values["martyr_id"], ip)
        raise HTTPException(status_code=429, detail="You can only submit one tribute per martyr per day")

    tribute = Tribute(**values, ip_address=ip)
    db.add(tribute)
    db.commit()
    db.refresh(tribute)
    return {
        "message": "Tribute submitted successfully. It will be reviewed by an administrator before being published.",
        "tribute": TributeOut.model_validate(tribute).model_dump(mode="json"),
        "tribute_id": tribute.id,
    }


@router.get("")
def list_tributes(
    martyr_id: Optional[int] = Query(default=None, ge=1, le=INT_MAX),
    approved: str = Query(default="true"),
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    admin: Optional[Admin] = Depends(get_optional_admin),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
):
    """
    Approved tributes of approved martyrs, newest first.
    ``approved=false`` or ``approved=all`` are moderation views and need a
    valid token; the public view ignores a stale one.
    """
    approved = approved.lower()
    if approved not in ("true", "false", "all"):
        reject_invalid(["Approved must be one of: true, false, all"])
    if approved != "true":
        admin = admin_from_token(credentials.credentials if credentials else None, db)

    page, limit = clamp_pagination(page, limit, default_limit=20)
    stmt = select(Tribute).join(Martyr, Tribute.martyr_id == Martyr.id)
    conds = []
    if approved == "true":
        conds.append(Tribute.is_approved == true())
        if admin is None:
            conds.append(Martyr.status == "approved")
    elif approved == "false":
        conds.append(Tribute.is_approved == false())
    if martyr_id is not None:
        conds.append(Tribute.martyr_id == martyr_id)
    if conds:
        stmt = stmt.where(and_(*conds))
    stmt = stmt.order_by(Tribute.created_at.desc(), Tribute.id.asc())

    rows, pagination = paginate(db, stmt, page, limit)
    out_model = TributeAdminOut if admin is not None else TributeOut
    tributes = []
    for t in rows:
        item = out_model.model_validate(t).model_dump(mode="json")
        item["martyr_name_ar"] = t.martyr.name_ar
        item["martyr_name_en"] = t.martyr.name_en
        tributes.append(item)
    return {"tributes": tributes, "pagination": pagination}


@router.get("/martyr/{martyr_id}")
def list_martyr_tributes(
    martyr_id: RecordId,
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
):
    martyr = get_martyr_or_404(db, martyr_id, approved_only=True)
    page, limit = clamp_pagination(page, limit, default_limit=20)
    stmt = (
        select(Tribute)
        .where(Tribute.martyr_id == martyr.id, Tribute.is_approved == true())
        .order_by(Tribute.created_at.desc(), Tribute.id.asc())
    )
    rows, pagination = paginate(db, stmt, page, limit)
    return {
        "martyr": {"id": martyr.id, "name_ar": martyr.name_ar, "name_en": martyr.name_en},
        "tributes": [TributeOut.model_validate(t).model_dump(mode="json") for t in rows],
        "pagination": pagination,
    }


# ---------- Moderation (admin) ----------


@router.get("/pending")
def list_pending_tributes(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """Moderation queue, oldest first, with the martyr each tribute is for."""
    page, limit = clamp_pagination(page, limit, default_limit=20)
    stmt = (
        select(Tribute)
        .where(Tribute.is_approved == false())
        .order_by(Tribute.created_at.asc(), Tribute.id.asc())
    )
    rows, pagination = paginate(db, stmt, page, limit)
    tributes = []
    for t in rows:
        item = TributeAdminOut.model_validate(t).model_dump(mode="json")
        item["martyr"] = _martyr_brief(t.martyr)
        tributes.append(item)
    return {"tributes": tributes, "pagination": pagination}


@router.get("/stats")
def tribute_stats(db: Session = Depends(get_db), admin: Admin = Depends(require_admin)):
    total = db.scalar(select(func.count(Tribute.id)))
    approved = db.scalar(select(func.count(Tribute.id)).where(Tribute.is_approved == true()))

    # last 12 months, "YYYY-MM" -> count, newest month first
    since = utcnow() - timedelta(days=365)
    created = db.execute(select(Tribute.created_at).where(Tribute.created_at >= since)).scalars()
    monthly = Counter(dt.strftime("%Y-%m") for dt in created)

    tribute_count = func.count(Tribute.id).label("tribute_count")
    top = db.execute(
        select(Martyr.id, Martyr.name_ar, Martyr.name_en, Martyr.place_of_martyrdom, tribute_count)
        .join(Tribute, and_(Tribute.martyr_id == Martyr.id, Tribute.is_approved == true()))
        .group_by(Martyr.id, Martyr.name_ar, Martyr.name_en, Martyr.place_of_martyrdom)
        .order_by(tribute_count.desc(), Martyr.id.asc())
        .limit(10)
    ).all()

    return {
        "total": total,
        "pending": total - approved,
        "approved": approved,
        "monthly": [{"month": m, "count": c} for m, c in sorted(monthly.items(), reverse=True)],
        "topMartyrs": [
            {
                "id": r.id,
                "name_ar": r.name_ar,
                "name_en": r.name_en,
                "place_of_martyrdom": r.place_of_martyrdom,
                "tribute_count": r.tribute_count,
            }
            for r in top
        ],
    }


@router.patch("/{tribute_id}/approve", response_model=MessageOut)
def approve_tribute(
    tribute_id: RecordId,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """
    Conditional update: a tribute that is missing or already approved
    (e.g. by a concurrent admin) is a 404, not an error.
    """
    result = db.execute(
        update(Tribute)
        .where(Tribute.id == tribute_id, Tribute.is_approved == false())
        .values(is_approved=True, approved_by=admin.id, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise HTTPException(status_code=404, detail=ALREADY_HANDLED)
    log_admin_action(db, admin=admin, action="approve", target_type="tribute", target_id=tribute_id)
    db.commit()
    return {"message": "Tribute approved successfully"}


@router.delete("/{tribute_id}", response_model=MessageOut)
def reject_tribute(
    tribute_id: RecordId,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """Rejecting a tribute deletes it. Approved tributes are left alone."""
    result = db.execute(
        delete(Tribute)
        .where(Tribute.id == tribute_id, Tribute.is_approved == false())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise HTTPException(status_code=404, detail=ALREADY_HANDLED)
    log_admin_action(db, admin=admin, action="reject", target_type="tribute", target_id=tribute_id)
    db.commit()
    return {"message": "Tribute rejected and deleted successfully"}


@router.post("/bulk-approve")
def bulk_approve_tributes(
    payload: BulkApproveIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    if not payload.tributeIds:
        reject_invalid(["At least one tribute ID is required"])
    if any(not 1 <= i <= INT_MAX for i in payload.tributeIds):
        reject_invalid(["All tribute IDs must be valid integers"])

    result = db.execute(
        update(Tribute)
        .where(Tribute.id.in_(payload.tributeIds), Tribute.is_approved == false())
        .values(is_approved=True, approved_by=admin.id, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    count = result.rowcount
    log_admin_action(
        db,
        admin=admin,
        action="bulk_approve",
        target_type="tribute",
        detail=f"{count} approved",
    )
    db.commit()
    return {
        "message": f"{count} tributes approved successfully",
        "approvedCount": count,
    }
