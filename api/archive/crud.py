"""Martyr record operations shared by the public and admin routers."""
import logging
from contextlib import contextmanager
from datetime import date
from typing import Optional

from fastapi import HTTPException, UploadFile
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .image_utils import delete_image, save_image_validated
from .models import Martyr, utcnow
from .schemas import MartyrPatch
from .utils import log_admin_action
from .validation import clean_martyr_fields, validate_martyr

logger = logging.getLogger(__name__)


def martyr_select(
    *,
    search: Optional[str] = None,
    place: Optional[str] = None,
    education_level: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
    approved: Optional[bool] = None,
    admin_order: bool = False,
):
    """
    One statement for both the page and its count.
    Public listings sort by date of martyrdom, admin ones by submission time;
    ties always fall back to id ascending.
    """
    stmt = select(Martyr)
    conds = []
    if search:
        like = f"%{search}%"
        conds.append(
            or_(
                Martyr.name_ar.ilike(like),
                Martyr.name_en.ilike(like),
                Martyr.bio.ilike(like),
            )
        )
    if place:
        conds.append(Martyr.place_of_martyrdom.ilike(f"%{place}%"))
    if education_level:
        conds.append(Martyr.education_level == education_level)
    if date_from:
        conds.append(Martyr.date_of_martyrdom >= date_from)
    if date_to:
        conds.append(Martyr.date_of_martyrdom <= date_to)
    if status:
        conds.append(Martyr.status == status)
    elif approved is not None:
        conds.append(Martyr.status == "approved" if approved else Martyr.status != "approved")

    if conds:
        stmt = stmt.where(and_(*conds))

    if admin_order:
        return stmt.order_by(Martyr.created_at.desc(), Martyr.id.asc())
    return stmt.order_by(Martyr.date_of_martyrdom.desc(), Martyr.id.asc())


def get_martyr_or_404(db: Session, martyr_id: int, approved_only: bool = False) -> Martyr:
    martyr = db.get(Martyr, martyr_id)
    if martyr is None or (approved_only and martyr.status != "approved"):
        raise HTTPException(status_code=404, detail="Martyr not found")
    return martyr


def reject_invalid(errors: list):
    if errors:
        raise HTTPException(status_code=400, detail={"error": "Validation failed", "errors": errors})


@contextmanager
def _cleanup_on_db_error(db: Session, photo_url: Optional[str]):
    """Drop the just-written photo if any statement in the block fails."""
    try:
        yield
    except SQLAlchemyError:
        db.rollback()
        delete_image(photo_url)
        raise


async def create_martyr(
    db: Session,
    fields: dict,
    photo: Optional[UploadFile],
    *,
    status: str = "pending",
    admin=None,
) -> Martyr:
    """
    validate -> store photo -> insert, in that order: a validation error
    never writes a file, an image error never writes a row.
    """
    reject_invalid(validate_martyr(fields))
    values = clean_martyr_fields(fields)

    photo_url = None
    if photo is not None:
        photo_url = (await save_image_validated(photo)).url

    martyr = Martyr(
        **values,
        photo_url=photo_url,
        status=status,
        created_by=getattr(admin, "id", None),
    )
    with _cleanup_on_db_error(db, photo_url):
        db.add(martyr)
        db.flush()
        if admin is not None:
            log_admin_action(db, admin=admin, action="create", target_type="martyr", target_id=martyr.id)
        db.commit()
    db.refresh(martyr)
    logger.info("martyr %s created (%s)", martyr.id, status)
    return martyr


async def update_martyr(
    db: Session,
    martyr: Martyr,
    fields: dict,
    photo: Optional[UploadFile],
    *,
    admin,
) -> tuple:
    """
    Partial update. Returns (martyr, replaced photo url or None); the caller
    deletes the replaced file once the response is on its way.
    """
    reject_invalid(validate_martyr(fields, partial=True))
    values = clean_martyr_fields(fields, partial=True)

    status = fields.get("status")
    if status is not None:
        if status not in ("pending", "approved", "rejected"):
            reject_invalid(["Status must be one of: pending, approved, rejected"])
        values["status"] = status

    new_photo_url = None
    if photo is not None:
        new_photo_url = (await save_image_validated(photo)).url
        values["photo_url"] = new_photo_url

    patch = MartyrPatch(**values)
    old_photo_url = martyr.photo_url
    for field, value in patch.model_dump(exclude_unset=True).items():
        setattr(martyr, field, value)
    martyr.updated_at = utcnow()

    log_admin_action(
        db,
        admin=admin,
        action="update",
        target_type="martyr",
        target_id=martyr.id,
        detail=", ".join(sorted(patch.model_fields_set)) or None,
    )
    with _cleanup_on_db_error(db, new_photo_url):
        db.commit()
    db.refresh(martyr)

    replaced = old_photo_url if new_photo_url and old_photo_url != new_photo_url else None
    return martyr, replaced


def set_martyr_status(db: Session, martyr: Martyr, status: str, *, admin) -> Martyr:
    """Moderation transition. Only ``status`` is written, ``approved`` follows."""
    previous = martyr.status
    martyr.status = status
    martyr.updated_at = utcnow()
    action = {"approved": "approve", "rejected": "reject"}.get(status, "unapprove")
    log_admin_action(
        db,
        admin=admin,
        action=action,
        target_type="martyr",
        target_id=martyr.id,
        detail=f"{previous} -> {status}",
    )
    db.commit()
    db.refresh(martyr)
    logger.info("martyr %s moderated %s -> %s by %s", martyr.id, previous, status, admin.username)
    return martyr


def delete_martyr(db: Session, martyr: Martyr, *, admin) -> Optional[str]:
    """
    Delete the record and, in the same transaction, all its tributes.
    Returns the photo url to remove after the commit.
    """
    photo_url = martyr.photo_url
    log_admin_action(
        db,
        admin=admin,
        action="delete",
        target_type="martyr",
        target_id=martyr.id,
        detail=martyr.name_en,
    )
    db.delete(martyr)
    db.commit()
    logger.info("martyr %s deleted by %s", martyr.id, admin.username)
    return photo_url
