# api/archive/main.py
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from swagger_ui_bundle import swagger_ui_3_path

from .config import settings
from .database import SessionLocal, engine, init_db
from .image_utils import ImageProcessingError
from .models import utcnow
from .routers_admin import ensure_super_admin, router as admin_router
from .routers_auth import router as auth_router
from .routers_martyrs import router as martyrs_router
from .routers_media import router as media_router
from .routers_stats import router as stats_router
from .routers_tributes import router as tributes_router
from .utils import ensure_dir

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Martyrs Archive API",
    version="1.0.0",
    openapi_url="/openapi.json",
    docs_url=None,
    redoc_url=None,
)

# --- CORS ---
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
allow_all = origins == ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else origins,
    allow_methods=["*"],
    allow_headers=["*"],
    # browsers refuse credentials with a wildcard origin
    allow_credentials=not allow_all,
)


# --- Security headers, strict CSP except for the docs page ---
CSP_STRICT = (
    "default-src 'self'; "
    "img-src 'self' data:; "
    "style-src 'self' 'unsafe-inline'; "
    "script-src 'self'; "
    "frame-ancestors 'self'"
)
CSP_DOCS = CSP_STRICT.replace("script-src 'self'", "script-src 'self' 'unsafe-inline'; connect-src 'self'")


@app.middleware("http")
async def security_headers(request: Request, call_next):
    resp = await call_next(request)
    path = request.url.path

    resp.headers.setdefault("X-Content-Type-Options", "nosniff")
    resp.headers.setdefault("X-Frame-Options", "DENY")
    resp.headers.setdefault("Referrer-Policy", "no-referrer")
    resp.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")

    if path == "/docs":
        resp.headers["Content-Security-Policy"] = CSP_DOCS
    else:
        resp.headers.setdefault("Content-Security-Policy", CSP_STRICT)

    # photos are embedded by the public site, which may live on another origin
    if path.startswith(settings.UPLOAD_URL_PREFIX):
        resp.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
        resp.headers.setdefault("Cache-Control", "public, max-age=86400")

    return resp


# --- Errors: every failure answers {"error": ...} ---
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(ImageProcessingError)
async def image_error(request: Request, exc: ImageProcessingError):
    logger.error("image processing failed on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Image processing failed"})


@app.exception_handler(SQLAlchemyError)
async def database_error(request: Request, exc: SQLAlchemyError):
    logger.error("database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Database error"})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# --- Startup ---
@app.on_event("startup")
def on_startup():
    if settings.DB_CREATE_ALL:
        init_db()
        logger.info("tables created from metadata")

    for directory in (settings.UPLOAD_DIR, settings.BACKUP_DIR):
        try:
            ensure_dir(directory)
        except OSError as e:
            # uploads then fail per request with a 500
            logger.warning("cannot create %s: %s", directory, e)

    with SessionLocal() as db:
        if ensure_super_admin(db) is None:
            logger.info("ADMIN_PASSWORD not set, no bootstrap admin")


# --- Routes ---
app.include_router(martyrs_router)
app.include_router(tributes_router)
app.include_router(auth_router)
app.include_router(stats_router)
app.include_router(media_router)
app.include_router(admin_router)


@app.get("/health", tags=["health"])
def health():
    """Liveness plus a round trip to the database."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health check: database unreachable: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "ERROR", "database": "disconnected", "timestamp": utcnow().isoformat()},
        )
    return {
        "status": "OK",
        "message": "Martyrs Archive API is running",
        "database": "connected",
        "timestamp": utcnow().isoformat(),
        "version": app.version,
    }


# --- Stored images ---
app.mount(
    settings.UPLOAD_URL_PREFIX.rstrip("/") or "/uploads",
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(title=app.title, version=app.version, routes=app.routes)
    schema["openapi"] = "3.0.3"
    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi

# --- Swagger UI served locally ---
app.mount("/static", StaticFiles(directory=swagger_ui_3_path), name="static")


@app.get("/docs", include_in_schema=False)
def custom_swagger_ui():
    return get_swagger_ui_html(
        openapi_url=app.openapi_url,
        title="Martyrs Archive API - Docs",
        swagger_js_url="/static/swagger-ui-bundle.js",
        swagger_css_url="/static/swagger-ui.css",
    )


def run():
    """Entry point of the ``archive-api`` console script."""
    uvicorn.run("archive.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
