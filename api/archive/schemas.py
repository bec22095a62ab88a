# api/archive/schemas.py
from datetime import date, datetime
from typing import Optional, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, confloat, conint, constr, field_validator

from .models import INT_MAX
from .utils import normalize_place, parse_date

MartyrStatus = Literal["pending", "approved", "rejected"]
EducationLevel = Literal["primary", "secondary", "university", "postgraduate", "other"]

# Roles an admin account can hold
RoleType = Literal["admin", "super_admin"]

NameStr = constr(strip_whitespace=True, min_length=2, max_length=255)
PlaceStr = constr(strip_whitespace=True, min_length=2, max_length=500)
ShortText = constr(strip_whitespace=True, max_length=255)

REQUIRED_MARTYR_FIELDS = (
    "name_ar",
    "name_en",
    "date_of_martyrdom",
    "place_of_martyrdom",
    "education_level",
    "occupation",
)
OPTIONAL_MARTYR_FIELDS = (
    "university_name",
    "faculty",
    "department",
    "school_state",
    "school_locality",
    "spouse",
    "bio",
    "children",
    "age",
    "latitude",
    "longitude",
)


# ========== Martyrs ==========

class MartyrBase(BaseModel):
    name_ar: str
    name_en: str
    date_of_martyrdom: date
    place_of_martyrdom: str
    education_level: str
    occupation: str
    university_name: Optional[str] = None
    faculty: Optional[str] = None
    department: Optional[str] = None
    school_state: Optional[str] = None
    school_locality: Optional[str] = None
    spouse: Optional[str] = None
    children: Optional[int] = None
    age: Optional[int] = None
    bio: Optional[str] = None
    photo_url: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class MartyrOut(MartyrBase):
    """Public view of a record. ``approved`` is derived from ``status``."""
    id: int
    status: MartyrStatus
    approved: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MartyrAdminOut(MartyrOut):
    created_by: Optional[int] = None


class MartyrIn(BaseModel):
    """
    Body of POST /martyrs and POST /admin/martyrs, JSON or form fields.
    Unknown keys (photo, status, approved...) are ignored here.
    - place_of_martyrdom: free text or {"state": ..., "area": ...}
    - date_of_martyrdom: YYYY-MM-DD, ISO datetime or DD/MM/YYYY
    - blank optional fields become None
    """
    name_ar: NameStr
    name_en: NameStr
    date_of_martyrdom: date
    place_of_martyrdom: PlaceStr
    education_level: EducationLevel
    occupation: NameStr
    university_name: Optional[ShortText] = None
    faculty: Optional[ShortText] = None
    department: Optional[ShortText] = None
    school_state: Optional[ShortText] = None
    school_locality: Optional[ShortText] = None
    spouse: Optional[ShortText] = None
    bio: Optional[constr(strip_whitespace=True, max_length=2000)] = None
    children: Optional[conint(ge=0, le=INT_MAX)] = None
    age: Optional[conint(ge=0, le=150)] = None
    latitude: Optional[confloat(ge=-90, le=90)] = None
    longitude: Optional[confloat(ge=-180, le=180)] = None

    @field_validator("date_of_martyrdom", mode="before")
    @classmethod
    def _parse_date(cls, v):
        try:
            parsed = parse_date(v)
        except (TypeError, ValueError):
            raise ValueError("invalid date")
        if parsed is None:
            raise ValueError("date is required")
        return parsed

    @field_validator("place_of_martyrdom", mode="before")
    @classmethod
    def _structured_place(cls, v):
        if isinstance(v, dict):
            if not any(len(str(v.get(k) or "").strip()) >= 2 for k in ("state", "area")):
                raise ValueError("state or area is required")
            return normalize_place(v)
        return v

    @field_validator("education_level", mode="before")
    @classmethod
    def _strip_level(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator(*OPTIONAL_MARTYR_FIELDS, mode="before")
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, bool):
            raise ValueError("booleans are not accepted here")
        return v


class MartyrUpdateIn(MartyrIn):
    """
    Body of PUT /martyrs/{id}: every field optional, only the ones sent are
    checked. Required columns can be changed but not cleared.
    """
    name_ar: Optional[NameStr] = None
    name_en: Optional[NameStr] = None
    date_of_martyrdom: Optional[date] = None
    place_of_martyrdom: Optional[PlaceStr] = None
    education_level: Optional[EducationLevel] = None
    occupation: Optional[NameStr] = None

    @field_validator(*REQUIRED_MARTYR_FIELDS, mode="before")
    @classmethod
    def _not_cleared(cls, v):
        if v is None:
            raise ValueError("cannot be cleared")
        return v


class MartyrPatch(MartyrUpdateIn):
    """
    Every column an update may touch. Anything not listed here cannot be
    changed through PUT /martyrs/{id}; unset fields are left alone.
    """
    photo_url: Optional[str] = None
    status: Optional[MartyrStatus] = None


class ModerationIn(BaseModel):
    """
    Payload for PATCH /martyrs/{id} and /martyrs/{id}/approve.
    Either ``approved`` (boolean view) or ``status`` (tri-state).
    """
    approved: Optional[bool] = None
    status: Optional[MartyrStatus] = None


# ========== Tributes ==========

class TributeIn(BaseModel):
    """Body of POST /tributes."""
    martyr_id: conint(ge=1, le=INT_MAX)
    visitor_name: NameStr
    message: constr(strip_whitespace=True, min_length=10, max_length=1000)

    @field_validator("martyr_id", mode="before")
    @classmethod
    def _no_bool(cls, v):
        if isinstance(v, bool):
            raise ValueError("booleans are not accepted here")
        return v


class TributeOut(BaseModel):
    id: int
    martyr_id: int
    visitor_name: str
    message: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TributeAdminOut(TributeOut):
    is_approved: bool
    approved: bool
    ip_address: Optional[str] = None
    approved_by: Optional[int] = None
    updated_at: datetime


class BulkApproveIn(BaseModel):
    tributeIds: list[int]


# ========== Auth / admin accounts ==========

class LoginIn(BaseModel):
    # username or e-mail
    username: str
    password: str


class AdminBrief(BaseModel):
    id: int
    username: str
    email: str
    role: RoleType

    model_config = ConfigDict(from_attributes=True)


class TokenOut(BaseModel):
    message: str = "Login successful"
    token: str
    token_type: str = "bearer"
    admin: AdminBrief


class AdminOut(AdminBrief):
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime


class AdminCreate(BaseModel):
    username: constr(strip_whitespace=True, min_length=3, max_length=100)
    email: EmailStr
    password: constr(min_length=6)
    role: RoleType = "admin"


class AdminUpdate(BaseModel):
    """
    Payload for PUT /admin/admins/{admin_id}:
    - email (optional, must stay unique)
    - password (optional, min 6 if given)
    - role (optional)
    - is_active (optional)
    """
    email: Optional[EmailStr] = None
    password: Optional[constr(min_length=6)] = None
    role: Optional[RoleType] = None
    is_active: Optional[bool] = None


class ProfileUpdate(BaseModel):
    """
    Payload for PUT /auth/profile. Changing the password requires the
    current one.
    """
    email: Optional[EmailStr] = None
    currentPassword: Optional[str] = None
    newPassword: Optional[constr(min_length=6)] = None


class AdminLogOut(BaseModel):
    """
    One audit trail entry.
    Used by GET /admin/logs.
    """
    id: int
    action: str
    target_type: Optional[str] = None
    target_id: Optional[int] = None
    detail: Optional[str] = None
    admin_username: Optional[str] = None
    created_at: datetime


# ========== Media gallery ==========

class MediaOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    file_url: str
    file_type: str
    category: Optional[str] = None
    is_public: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageOut(BaseModel):
    """
    Generic answer for command-style actions.
    """
    message: str
