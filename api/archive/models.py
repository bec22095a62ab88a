# api/archive/models.py
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import false, func, true

from .database import Base

MARTYR_STATUSES = ("pending", "approved", "rejected")
ADMIN_ROLES = ("admin", "super_admin")
MEDIA_TYPES = ("image", "video", "document")
# largest value of the Integer id and count columns
INT_MAX = 2**31 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Martyr(Base):
    __tablename__ = "martyrs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_martyrs_status",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    name_ar = Column(String(255), nullable=False, index=True)
    name_en = Column(String(255), nullable=False, index=True)
    date_of_martyrdom = Column(Date, nullable=False, index=True)
    # free text, or a {"state": ..., "area": ...} object stored as JSON text
    place_of_martyrdom = Column(String(500), nullable=False, index=True)
    education_level = Column(String(50), nullable=False, index=True)
    occupation = Column(String(255), nullable=False)

    university_name = Column(String(255), nullable=True)
    faculty = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    school_state = Column(String(255), nullable=True)
    school_locality = Column(String(255), nullable=True)
    spouse = Column(String(255), nullable=True)
    children = Column(Integer, nullable=True)
    age = Column(Integer, nullable=True)
    bio = Column(Text, nullable=True)
    photo_url = Column(String(512), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Sole moderation state. The boolean "approved" is derived from it.
    status = Column(String(20), nullable=False, default="pending", server_default="pending", index=True)

    created_by = Column(Integer, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    tributes = relationship(
        "Tribute",
        back_populates="martyr",
        cascade="all, delete-orphan",
        order_by="Tribute.id",
    )

    @property
    def approved(self) -> bool:
        return self.status == "approved"


class Tribute(Base):
    __tablename__ = "tributes"

    id = Column(Integer, primary_key=True, index=True)
    martyr_id = Column(Integer, ForeignKey("martyrs.id", ondelete="CASCADE"), nullable=False, index=True)
    visitor_name = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_approved = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    ip_address = Column(String(45), nullable=True, index=True)
    approved_by = Column(Integer, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    martyr = relationship("Martyr", back_populates="tributes")

    @property
    def approved(self) -> bool:
        return bool(self.is_approved)


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="admin")
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)


class MediaItem(Base):
    __tablename__ = "media_gallery"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    file_url = Column(String(512), nullable=False)
    file_type = Column(String(20), nullable=False, default="image")
    category = Column(String(100), nullable=True, index=True)
    is_public = Column(Boolean, nullable=False, default=True, server_default=true(), index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)


class Statistic(Base):
    """Cached aggregate, one row per stat_type (e.g. "overview")."""
    __tablename__ = "statistics"

    id = Column(Integer, primary_key=True, index=True)
    stat_type = Column(String(100), unique=True, nullable=False)
    stat_value = Column(JSON, nullable=False)
    last_updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AdminLog(Base):
    """
    Audit trail of admin actions.
    Keeps:
      - who (admin_id)
      - on what (target_type / target_id)
      - which action (create / update / approve / reject / delete ...)
      - when (created_at)
      - an optional short text (detail)
    """
    __tablename__ = "admin_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(30), nullable=False, index=True)
    target_type = Column(String(30), nullable=True, index=True)
    target_id = Column(Integer, nullable=True, index=True)
    detail = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
