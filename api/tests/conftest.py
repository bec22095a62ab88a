import io
import os
import tempfile

import pytest
from PIL import Image

# settings are read once, when archive.config is first imported
_TMP = tempfile.mkdtemp(prefix="archive-tests-")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_CREATE_ALL"] = "1"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["BACKUP_DIR"] = os.path.join(_TMP, "backups")
os.environ["SECRET_KEY"] = "test-secret"
os.environ["STATS_CACHE_SECONDS"] = "0"
os.environ.pop("REDIS_URL", None)
os.environ.pop("ADMIN_PASSWORD", None)

from fastapi.testclient import TestClient  # noqa: E402

from archive.auth import create_access_token, get_password_hash  # noqa: E402
from archive.config import settings  # noqa: E402
from archive.database import Base, SessionLocal, engine  # noqa: E402
from archive.main import app  # noqa: E402
from archive.models import Admin, Martyr, Tribute  # noqa: E402
from archive.ratelimit import MemoryRateLimiter, get_login_limiter  # noqa: E402

PASSWORD = "s3cret-pass"
# hashing is slow, every test account shares one hash
_PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture(autouse=True)
def _fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def login_limiter():
    limiter = MemoryRateLimiter(
        settings.LOGIN_MAX_ATTEMPTS,
        settings.LOGIN_WINDOW_MINUTES * 60,
        prefix="rl:login",
    )
    app.dependency_overrides[get_login_limiter] = lambda: limiter
    yield limiter
    app.dependency_overrides.pop(get_login_limiter, None)


@pytest.fixture()
def client(login_limiter):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_admin(db):
    def _make(username="moderator", role="admin", is_active=True):
        admin = Admin(
            username=username,
            email=f"{username}@example.org",
            password_hash=_PASSWORD_HASH,
            role=role,
            is_active=is_active,
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        return admin

    return _make


@pytest.fixture()
def admin(make_admin):
    return make_admin()


@pytest.fixture()
def super_admin(make_admin):
    return make_admin(username="root", role="super_admin")


@pytest.fixture()
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(admin)}"}


@pytest.fixture()
def super_headers(super_admin):
    return {"Authorization": f"Bearer {create_access_token(super_admin)}"}


@pytest.fixture()
def make_martyr(db):
    """Insert a record directly, bypassing the API."""
    counter = {"n": 0}

    def _make(status="approved", **overrides):
        from datetime import date

        counter["n"] += 1
        values = {
            "name_ar": f"شهيد {counter['n']}",
            "name_en": f"Martyr {counter['n']}",
            "date_of_martyrdom": date(2023, 6, 1),
            "place_of_martyrdom": "Khartoum",
            "education_level": "university",
            "occupation": "Engineer",
            "status": status,
        }
        values.update(overrides)
        martyr = Martyr(**values)
        db.add(martyr)
        db.commit()
        db.refresh(martyr)
        return martyr

    return _make


@pytest.fixture()
def make_tribute(db):
    def _make(martyr, is_approved=False, ip_address="10.0.0.1", **overrides):
        tribute = Tribute(
            martyr_id=martyr.id,
            visitor_name=overrides.pop("visitor_name", "A visitor"),
            message=overrides.pop("message", "Rest in peace, you are remembered."),
            is_approved=is_approved,
            ip_address=ip_address,
            **overrides,
        )
        db.add(tribute)
        db.commit()
        db.refresh(tribute)
        return tribute

    return _make


def image_bytes(size=(64, 64), fmt="PNG", color=(120, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format=fmt)
    return buf.getvalue()


VALID_MARTYR = {
    "name_ar": "أحمد",
    "name_en": "Ahmed",
    "date_of_martyrdom": "2024-01-01",
    "place_of_martyrdom": "Khartoum",
    "education_level": "university",
    "occupation": "Engineer",
}
