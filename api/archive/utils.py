import json
import math
from datetime import date, datetime
from pathlib import Path
from typing import Annotated, Any, Optional, Tuple

from fastapi import HTTPException, Path as PathParam, Request, UploadFile
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile as StarletteUploadFile

from .config import settings
from .models import INT_MAX, AdminLog

MAX_PAGE_SIZE = 100

# path ids beyond the column range are a 400, never a database overflow
RecordId = Annotated[int, PathParam(ge=1, le=INT_MAX)]


def ensure_dir(path: str):
    Path(path).mkdir(parents=True, exist_ok=True)


# ---------- Pagination ----------

def clamp_pagination(page: Optional[int], limit: Optional[int], default_limit: int = 10) -> Tuple[int, int]:
    """1 <= page <= INT_MAX, 1 <= limit <= 100, before any offset is computed."""
    page = min(page, INT_MAX) if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit
    return page, min(limit, MAX_PAGE_SIZE)


def pagination_meta(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if total else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalItems": total,
        "itemsPerPage": limit,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def paginate(db: Session, stmt, page: int, limit: int):
    """
    Run ``stmt`` for one page and count the rows matching the same
    statement, so the total and the slice can never disagree.
    Returns (rows, pagination dict).
    """
    total = db.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    rows = db.execute(stmt.offset((page - 1) * limit).limit(limit)).scalars().all()
    return rows, pagination_meta(page, limit, total)


# ---------- Requests ----------

def client_ip(request: Request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"


async def read_payload(request: Request, file_field: str = "photo") -> Tuple[dict, Optional[UploadFile]]:
    """
    Read a submission sent either as JSON or as a (multipart) form.
    Returns (fields, uploaded file or None). Empty file inputs count as no file.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="JSON body must be an object")
        return body, None

    form = await request.form()
    fields: dict[str, Any] = {}
    upload = None
    for key, value in form.multi_items():
        if isinstance(value, StarletteUploadFile):
            if key == file_field and value.filename:
                upload = value
            continue
        fields[key] = value
    # a structured place may arrive as JSON text inside a form
    place = fields.get("place_of_martyrdom")
    if isinstance(place, str) and place.strip().startswith("{"):
        try:
            parsed = json.loads(place)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            fields["place_of_martyrdom"] = parsed
    return fields, upload


def parse_bool(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return None


def parse_date(s: Any) -> Optional[date]:
    """
    Accepts:
      - YYYY-MM-DD (HTML <input type="date">)
      - a full ISO 8601 datetime (only the date part is kept)
      - DD/MM/YYYY
    Raises ValueError on anything else.
    """
    if s is None:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    s = str(s).strip()
    if not s:
        return None
    if "/" in s:
        parts = [p.strip() for p in s.split("/")]
        if len(parts) != 3:
            raise ValueError(f"Invalid date: {s}")
        d, m, y = (int(p) for p in parts)
        return date(y, m, d)
    try:
        return date.fromisoformat(s)
    except ValueError:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()


def normalize_place(value: Any) -> str:
    """Free text is kept as is, a {state, area} object becomes JSON text."""
    if isinstance(value, dict):
        return json.dumps(
            {"state": value.get("state"), "area": value.get("area")},
            ensure_ascii=False,
        )
    return str(value).strip()


# ---------- Audit trail ----------

def log_admin_action(
    db: Session,
    *,
    admin,
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    detail: Optional[str] = None,
):
    """
    Add an audit entry to the current transaction.
    - action: "create", "update", "approve", "reject", "delete", ...
    """
    db.add(
        AdminLog(
            admin_id=getattr(admin, "id", None),
            action=action,
            target_type=target_type,
            target_id=target_id,
            detail=detail,
        )
    )
