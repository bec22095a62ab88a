# api/archive/routers_martyrs.py
from datetime import date
from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Query,
    Request,
    status,
)
from sqlalchemy.orm import Session

from .auth import require_admin
from .crud import (
    create_martyr,
    delete_martyr,
    get_martyr_or_404,
    martyr_select,
    set_martyr_status,
    update_martyr,
)
from .database import get_db
from .image_utils import delete_image
from .models import Admin
from .schemas import MartyrAdminOut, MartyrOut, MessageOut, ModerationIn
from .utils import RecordId, clamp_pagination, paginate, read_payload

router = APIRouter(prefix="/martyrs", tags=["martyrs"])


def resolve_status(payload: ModerationIn) -> str:
    """
    ``status`` wins when both are sent; ``approved: false`` sends a record
    back to the queue rather than rejecting it.
    """
    if payload.status is not None:
        return payload.status
    if payload.approved is not None:
        return "approved" if payload.approved else "pending"
    raise HTTPException(
        status_code=400,
        detail={"error": "Validation failed", "errors": ["Either approved or status is required"]},
    )


# =====================================================
# 1) PUBLIC LIST
#    GET /martyrs?page=&limit=&search=&place=&education_level=
#    -> approved records only, newest date of martyrdom first
# =====================================================
@router.get("", response_model=dict)
def list_martyrs(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    search: Optional[str] = Query(default=None),
    place: Optional[str] = Query(default=None),
    education_level: Optional[str] = Query(default=None),
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
):
    page, limit = clamp_pagination(page, limit)
    stmt = martyr_select(
        search=search,
        place=place,
        education_level=education_level,
        date_from=date_from,
        date_to=date_to,
        status="approved",
    )
    rows, pagination = paginate(db, stmt, page, limit)
    return {
        "martyrs": [MartyrOut.model_validate(m).model_dump(mode="json") for m in rows],
        "pagination": pagination,
    }


# =====================================================
# 2) PUBLIC DETAIL
# =====================================================
@router.get("/{martyr_id}", response_model=MartyrOut)
def get_martyr(martyr_id: RecordId, db: Session = Depends(get_db)):
    return get_martyr_or_404(db, martyr_id, approved_only=True)


# =====================================================
# 3) PUBLIC SUBMISSION
#    POST /martyrs (multipart with optional "photo", or JSON)
#    -> always stored as pending, whatever the body says
# =====================================================
@router.post("", response_model=MartyrOut, status_code=status.HTTP_201_CREATED)
async def submit_martyr(request: Request, db: Session = Depends(get_db)):
    fields, photo = await read_payload(request)
    return await create_martyr(db, fields, photo, status="pending")


# =====================================================
# 4) ADMIN MUTATIONS
# =====================================================
@router.put("/{martyr_id}", response_model=MartyrAdminOut)
async def admin_update_martyr(
    martyr_id: RecordId,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """
    Partial update: only the fields sent are validated and written.
    A new photo replaces the old one, which is removed after the commit.
    """
    martyr = get_martyr_or_404(db, martyr_id)
    fields, photo = await read_payload(request)
    martyr, replaced = await update_martyr(db, martyr, fields, photo, admin=admin)
    if replaced:
        background_tasks.add_task(delete_image, replaced)
    return martyr


@router.delete("/{martyr_id}", response_model=MessageOut)
def admin_delete_martyr(
    martyr_id: RecordId,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """Deletes the record and its tributes, then its photo."""
    martyr = get_martyr_or_404(db, martyr_id)
    photo_url = delete_martyr(db, martyr, admin=admin)
    if photo_url:
        background_tasks.add_task(delete_image, photo_url)
    return {"message": "Martyr deleted successfully"}


@router.patch("/{martyr_id}", response_model=MartyrAdminOut)
@router.patch("/{martyr_id}/approve", response_model=MartyrAdminOut)
def admin_moderate_martyr(
    martyr_id: RecordId,
    payload: ModerationIn,
    db: Session = Depends(get_db),
    admin: Admin = Depends(require_admin),
):
    """Body ``{"approved": bool}`` or ``{"status": "pending|approved|rejected"}``."""
    martyr = get_martyr_or_404(db, martyr_id)
    return set_martyr_status(db, martyr, resolve_status(payload), admin=admin)
