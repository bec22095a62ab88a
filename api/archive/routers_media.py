# api/archive/routers_media.py
from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
    status,
)
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import true

from .auth import require_admin
from .crud import reject_invalid
from .database import get_db
from .image_utils import delete_image, save_image_validated
from .models import Admin, MediaItem
from .schemas import MediaOut, MessageOut
from .utils import RecordId, clamp_pagination, log_admin_action, paginate, parse_bool

router = APIRouter(tags=["media"])


@router.get("/media")
def list_media(
    category: Optional[str] = Query(default=None),
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
):
    """Public gallery: only items flagged public, newest first."""
    page, limit = clamp_pagination(page, limit, default_limit=20)
    stmt = select(MediaItem).where(MediaItem.is_public == true())
    if category:
        stmt = stmt.where(MediaItem.category == category)
    stmt = stmt.order_by(MediaItem.created_at.desc(), MediaItem.id.asc())
    rows, pagination = paginate(db, stmt, page, limit)
    return {
        "media": [MediaOut.model_validate(m).model_dump(mode="json") for m in rows],
        "pagination": pagination,
    }


@router.post("/admin/media", response_model=MediaOut, status_code=status.HTTP_201_CREATED)
async def upload_media(
    title: str = Form(...),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    is_public: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """
    Gallery upload. Images only: they go through the same
    resize/re-encode pipeline as martyr photos.
    """
    title = title.strip()
    if not 2 <= len(title) <= 255:
        reject_invalid(["Title must be between 2 and 255 characters"])

    stored = await save_image_validated(file, prefix="media", subdir="media")

    public = parse_bool(is_public)
    item = MediaItem(
        title=title,
        description=(description or "").strip() or None,
        file_url=stored.url,
        file_type="image",
        category=(category or "").strip() or None,
        is_public=True if public is None else public,
    )
    db.add(item)
    try:
        db.flush()
        log_admin_action(db, admin=admin, action="create", target_type="media", target_id=item.id)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        delete_image(stored.url)
        raise
    db.refresh(item)
    return item


@router.delete("/admin/media/{media_id}", response_model=MessageOut)
def delete_media(
    media_id: RecordId,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    item = db.get(MediaItem, media_id)
    if not item:
        raise HTTPException(status_code=404, detail="Media item not found")

    file_url = item.file_url
    log_admin_action(db, admin=admin, action="delete", target_type="media", target_id=item.id, detail=item.title)
    db.delete(item)
    db.commit()
    background_tasks.add_task(delete_image, file_url)
    return {"message": "Media item deleted successfully"}
