# api/archive/routers_stats.py
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import case, extract, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql import false, true

from .auth import require_admin
from .config import settings
from .database import get_db
from .models import Admin, Martyr, Statistic, Tribute, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stats", tags=["stats"])

AGE_GROUP_ORDER = ("Under 18", "18-25", "26-35", "36-50", "Over 50", "Unknown")


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _grouped(db: Session, column, *where, limit=None):
    """[(value, count)] for martyrs matching ``where``, grouped on ``column``, biggest first."""
    count = func.count(Martyr.id).label("count")
    stmt = select(column, count).group_by(column).order_by(count.desc(), column.asc())
    if where:
        stmt = stmt.where(*where)
    if limit:
        stmt = stmt.limit(limit)
    return db.execute(stmt).all()


# ---------- Overview ----------


def compute_overview(db: Session) -> dict:
    approved = Martyr.status == "approved"
    today = utcnow().date()

    total_martyrs = db.scalar(select(func.count(Martyr.id)).where(approved))
    total_tributes = db.scalar(select(func.count(Tribute.id)).where(Tribute.is_approved == true()))
    recent = db.scalar(
        select(func.count(Martyr.id)).where(approved, Martyr.date_of_martyrdom >= today - timedelta(days=30))
    )

    by_place = _grouped(db, Martyr.place_of_martyrdom, approved, limit=10)
    by_education = _grouped(db, Martyr.education_level, approved)

    age_group = case(
        (Martyr.age < 18, "Under 18"),
        (Martyr.age.between(18, 25), "18-25"),
        (Martyr.age.between(26, 35), "26-35"),
        (Martyr.age.between(36, 50), "36-50"),
        (Martyr.age > 50, "Over 50"),
        else_="Unknown",
    )
    by_age = dict(
        db.execute(
            select(age_group, func.count(Martyr.id)).where(approved).group_by(age_group)
        ).all()
    )

    year = extract("year", Martyr.date_of_martyrdom)
    month = extract("month", Martyr.date_of_martyrdom)
    by_month = db.execute(
        select(month.label("month"), func.count(Martyr.id))
        .where(approved, year == today.year)
        .group_by(month)
        .order_by(month)
    ).all()
    by_year = db.execute(
        select(year.label("year"), func.count(Martyr.id))
        .where(approved)
        .group_by(year)
        .order_by(year.desc())
    ).all()

    return {
        "totalMartyrs": total_martyrs,
        "totalTributes": total_tributes,
        "recentMartyrs": recent,
        "byPlace": [{"place_of_martyrdom": p, "count": c} for p, c in by_place],
        "byEducation": [{"education_level": e, "count": c} for e, c in by_education],
        "byAge": [{"age_group": g, "count": by_age[g]} for g in AGE_GROUP_ORDER if g in by_age],
        "byMonth": [{"month": int(m), "count": c} for m, c in by_month],
        "byYear": [{"year": int(y), "count": c} for y, c in by_year],
    }


@router.get("")
def overview(db: Session = Depends(get_db)):
    """
    Public aggregate figures. Cached in the ``statistics`` table for
    ``STATS_CACHE_SECONDS``; 0 disables the cache.
    """
    now = utcnow()
    cached = db.query(Statistic).filter(Statistic.stat_type == "overview").first()
    if (
        cached is not None
        and settings.STATS_CACHE_SECONDS > 0
        and now - _aware(cached.last_updated) < timedelta(seconds=settings.STATS_CACHE_SECONDS)
    ):
        return {**cached.stat_value, "lastUpdated": _aware(cached.last_updated).isoformat()}

    value = compute_overview(db)
    if cached is None:
        cached = Statistic(stat_type="overview", stat_value=value, last_updated=now)
        db.add(cached)
    else:
        cached.stat_value = value
        cached.last_updated = now
    try:
        db.commit()
    except IntegrityError:
        # a concurrent request stored the row first
        db.rollback()
    logger.debug("overview statistics refreshed")
    return {**value, "lastUpdated": now.isoformat()}


# ---------- Map ----------


@router.get("/map")
def map_data(db: Session = Depends(get_db)):
    """One entry per place: count, date range and mean coordinates."""
    count = func.count(Martyr.id).label("count")
    rows = db.execute(
        select(
            Martyr.place_of_martyrdom,
            count,
            func.min(Martyr.date_of_martyrdom).label("earliest_date"),
            func.max(Martyr.date_of_martyrdom).label("latest_date"),
            func.avg(Martyr.latitude).label("latitude"),
            func.avg(Martyr.longitude).label("longitude"),
        )
        .where(Martyr.status == "approved")
        .group_by(Martyr.place_of_martyrdom)
        .order_by(count.desc(), Martyr.place_of_martyrdom.asc())
    ).all()
    return [
        {
            "place_of_martyrdom": r.place_of_martyrdom,
            "count": r.count,
            "earliest_date": r.earliest_date,
            "latest_date": r.latest_date,
            "latitude": float(r.latitude) if r.latitude is not None else None,
            "longitude": float(r.longitude) if r.longitude is not None else None,
        }
        for r in rows
    ]


# ---------- Admin ----------


def _by_day_or_month(values, fmt: str) -> list:
    counts = Counter(v.strftime(fmt) for v in values if v is not None)
    return sorted(counts.items(), reverse=True)


@router.get("/detailed")
def detailed(db: Session = Depends(get_db), admin: Admin = Depends(require_admin)):
    status_counts = dict(
        db.execute(select(Martyr.status, func.count(Martyr.id)).group_by(Martyr.status)).all()
    )
    total_tributes = db.scalar(select(func.count(Tribute.id)))
    pending_tributes = db.scalar(select(func.count(Tribute.id)).where(Tribute.is_approved == false()))
    active_admins = db.scalar(select(func.count(Admin.id)).where(Admin.is_active == true()))

    now = utcnow()
    year_ago = now - timedelta(days=365)
    week_ago = now - timedelta(days=7)

    martyr_dates = db.execute(
        select(Martyr.date_of_martyrdom).where(Martyr.date_of_martyrdom >= year_ago.date())
    ).scalars()
    tribute_dates = db.execute(
        select(Tribute.created_at).where(Tribute.created_at >= year_ago)
    ).scalars()
    new_martyrs = db.execute(select(Martyr.created_at).where(Martyr.created_at >= week_ago)).scalars()
    new_tributes = db.execute(select(Tribute.created_at).where(Tribute.created_at >= week_ago)).scalars()

    recent_activity = [
        {"type": "martyrs", "date": d, "count": c} for d, c in _by_day_or_month(new_martyrs, "%Y-%m-%d")
    ] + [
        {"type": "tributes", "date": d, "count": c} for d, c in _by_day_or_month(new_tributes, "%Y-%m-%d")
    ]
    recent_activity.sort(key=lambda a: (a["date"], a["type"]), reverse=True)

    return {
        "overview": {
            "totalMartyrs": sum(status_counts.values()),
            "pendingMartyrs": status_counts.get("pending", 0),
            "approvedMartyrs": status_counts.get("approved", 0),
            "rejectedMartyrs": status_counts.get("rejected", 0),
            "pendingTributes": pending_tributes,
            "totalTributes": total_tributes,
            "totalAdmins": active_admins,
        },
        "monthlyTrends": [
            {"month": m, "martyr_count": c} for m, c in _by_day_or_month(martyr_dates, "%Y-%m")
        ],
        "tributesByMonth": [
            {"month": m, "tribute_count": c} for m, c in _by_day_or_month(tribute_dates, "%Y-%m")
        ],
        "topLocations": [
            {"place_of_martyrdom": p, "count": c}
            for p, c in _grouped(db, Martyr.place_of_martyrdom, limit=20)
        ],
        "educationStats": [
            {"education_level": e, "count": c}
            for e, c in _grouped(db, Martyr.education_level, limit=10)
        ],
        "occupationStats": [
            {"occupation": o, "count": c}
            for o, c in _grouped(db, Martyr.occupation, limit=10)
        ],
        "recentActivity": recent_activity,
    }
