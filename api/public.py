"""
VidShare API - accounts, uploads, videos and views.
Runs on port 4000. All routes live under /api; uploaded files are served
from /uploads.

Run with: uvicorn api.public:app --host 0.0.0.0 --port 4000
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded

from api import identity, video_store
from api.admin import router as admin_router
from api.audit import AuditAction, log_audit
from api.auth import Caller, get_caller, require_user
from api.common import (
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    check_health,
    get_real_ip,
    limiter,
    rate_limit_exceeded_handler,
    request_audit_fields,
    upload_storage,
)
from api.database import create_tables, database
from api.db_retry import DatabaseRetryableError, connect_with_retry
from api.errors import VidShareError
from api.exception_utils import handle_api_exceptions
from api.schemas import (
    LoginRequest,
    NotificationResponse,
    OkResponse,
    RegisterRequest,
    UploadResponse,
    UserSummary,
    VideoCreate,
    VideoResponse,
    ViewCountResponse,
)
from config import (
    ALLOWED_IMAGE_MIME_TYPES,
    ALLOWED_VIDEO_MIME_TYPES,
    CORS_ALLOWED_ORIGINS,
    HOST,
    MAX_LOGO_UPLOAD_SIZE,
    MAX_VIDEO_UPLOAD_SIZE,
    PORT,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_LOGIN,
    RATE_LIMIT_STORAGE_URL,
    RATE_LIMIT_UPLOAD,
    RATE_LIMIT_VIEWS,
    UPLOADS_DIR,
    UPLOADS_URL_PATH,
)

logger = logging.getLogger(__name__)

# Security event logger - separate from regular application logging
security_logger = logging.getLogger("security.auth")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown."""
    # Warn about in-memory rate limiting limitations
    if RATE_LIMIT_ENABLED and RATE_LIMIT_STORAGE_URL == "memory://":
        logger.warning(
            "Rate limiting is using in-memory storage. "
            "For production deployments with multiple instances, configure Redis: "
            "VIDSHARE_RATE_LIMIT_STORAGE_URL=redis://localhost:6379"
        )
    await connect_with_retry(database)
    await asyncio.get_running_loop().run_in_executor(None, create_tables)
    yield
    await database.disconnect()


app = FastAPI(title="VidShare", description="Video sharing backend", lifespan=lifespan)

# Register rate limiter with the app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.exception_handler(VidShareError)
async def vidshare_error_handler(request: Request, exc: VidShareError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are a 400 bad_request like any other client error."""
    errors = exc.errors()
    message = errors[0].get("msg", "Bad request") if errors else "Bad request"
    return JSONResponse(status_code=400, content={"detail": message, "error": "bad_request"})


@app.exception_handler(DatabaseRetryableError)
async def database_retryable_handler(request: Request, exc: DatabaseRetryableError):
    """Handle exhausted database retries with a 503 response."""
    logger.warning(f"Database unavailable: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Database temporarily unavailable, please retry", "error": "server_error"},
        headers={"Retry-After": "1"},
    )


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)

# If CORS_ALLOWED_ORIGINS is empty, any origin may call without credentials
# Note: allow_credentials=True requires specific origins, not wildcards
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS if CORS_ALLOWED_ORIGINS else ["*"],
    allow_credentials=bool(CORS_ALLOWED_ORIGINS),
    allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-User-Id", "X-Admin", "X-Admin-Secret", "X-Request-ID"],
    expose_headers=["Content-Length", "X-Request-ID"],
)

# check_dir=False: the directory is created on first upload
app.mount(UPLOADS_URL_PATH, StaticFiles(directory=str(UPLOADS_DIR), check_dir=False), name="uploads")

app.include_router(admin_router)


@app.get("/api/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns 503 if the database or upload storage is unhealthy.
    """
    result = await check_health(UPLOADS_DIR)
    return JSONResponse(
        status_code=result["status_code"],
        content={
            "ok": result["healthy"],
            "status": "healthy" if result["healthy"] else "unhealthy",
            "checks": result["checks"],
            "checked_at": result["checked_at"],
        },
    )


# ============================================================================
# Auth
# ============================================================================


@app.post("/api/auth/register", status_code=201)
@limiter.limit(RATE_LIMIT_LOGIN)
@handle_api_exceptions("register", "Registration failed")
async def register(request: Request, data: RegisterRequest) -> UserSummary:
    user = await identity.register(data.email, data.name, data.password, data.logo)
    log_audit(
        AuditAction.USER_REGISTER,
        actor_id=user.user_id,
        resource_type="user",
        resource_id=user.user_id,
        **request_audit_fields(request),
    )
    return user


@app.post("/api/auth/login")
@limiter.limit(RATE_LIMIT_LOGIN)
@handle_api_exceptions("login", "Login failed")
async def login(request: Request, data: LoginRequest) -> UserSummary:
    client_ip = get_real_ip(request)
    try:
        user = await identity.authenticate(data.email, data.password)
    except VidShareError:
        security_logger.warning(
            "Login failed",
            extra={"event": "auth_failure", "reason": "invalid_credentials", "client_ip": client_ip},
        )
        raise
    security_logger.info(
        "Login succeeded",
        extra={"event": "auth_success", "user_id": user.user_id, "client_ip": client_ip},
    )
    return user


@app.get("/api/auth/notifications")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("get_notifications", "Failed to load notifications")
async def get_notifications(
    request: Request,
    caller: Caller = Depends(get_caller),
) -> List[NotificationResponse]:
    return await identity.get_notifications(caller.user_id)


# ============================================================================
# Uploads
# ============================================================================


def _upload_response(request: Request, stored: dict) -> UploadResponse:
    return UploadResponse(
        url=str(request.base_url).rstrip("/") + stored["path"],
        filename=stored["filename"],
        size=stored["size"],
        mimetype=stored["mimetype"],
    )


@app.post("/api/upload", status_code=201)
@limiter.limit(RATE_LIMIT_UPLOAD)
@handle_api_exceptions("upload_file", "Upload failed")
async def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None),
    caller: Caller = Depends(get_caller),
) -> UploadResponse:
    """Store a video or image file for a later video record."""
    user_id = require_user(caller)
    stored = await upload_storage.save(
        file,
        ALLOWED_VIDEO_MIME_TYPES | ALLOWED_IMAGE_MIME_TYPES,
        MAX_VIDEO_UPLOAD_SIZE,
    )
    log_audit(
        AuditAction.FILE_UPLOAD,
        actor_id=user_id,
        resource_type="file",
        resource_name=stored["filename"],
        details={"size": stored["size"], "mimetype": stored["mimetype"]},
        **request_audit_fields(request),
    )
    return _upload_response(request, stored)


@app.post("/api/auth/upload-logo", status_code=201)
@limiter.limit(RATE_LIMIT_UPLOAD)
@handle_api_exceptions("upload_logo", "Upload failed")
async def upload_logo(request: Request, file: Optional[UploadFile] = File(None)) -> UploadResponse:
    """Store an avatar image. Open to anonymous callers so it can precede registration."""
    stored = await upload_storage.save(file, ALLOWED_IMAGE_MIME_TYPES, MAX_LOGO_UPLOAD_SIZE)
    log_audit(
        AuditAction.LOGO_UPLOAD,
        resource_type="file",
        resource_name=stored["filename"],
        details={"size": stored["size"], "mimetype": stored["mimetype"]},
        **request_audit_fields(request),
    )
    return _upload_response(request, stored)


# ============================================================================
# Videos
# ============================================================================


@app.post("/api/videos", status_code=201)
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("create_video", "Failed to create video")
async def create_video(
    request: Request,
    data: VideoCreate,
    caller: Caller = Depends(get_caller),
) -> VideoResponse:
    user_id = require_user(caller)
    video = await video_store.create(user_id, data)
    log_audit(
        AuditAction.VIDEO_CREATE,
        actor_id=user_id,
        resource_type="video",
        resource_id=video.id,
        resource_name=video.title,
        **request_audit_fields(request),
    )
    return video


@app.get("/api/videos")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("list_videos", "Failed to list videos")
async def list_videos(
    request: Request,
    mine: Optional[str] = None,
    category: Optional[str] = None,
    caller: Caller = Depends(get_caller),
) -> List[VideoResponse]:
    """
    List videos, newest first.

    - mine=1: the caller's own videos (requires X-User-Id)
    - admin callers: every video
    - everyone else: approved videos only

    category filters case-insensitively; "all" disables the filter.
    """
    if mine == "1":
        return await video_store.list_mine(require_user(caller), category)
    if caller.is_admin:
        return await video_store.list_all_for_admin(category)
    return await video_store.list_public(category)


@app.patch("/api/videos/{video_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("update_video", "Failed to update video")
async def update_video(
    request: Request,
    video_id: str,
    patch: Dict[str, Any] = Body(...),
    caller: Caller = Depends(get_caller),
) -> VideoResponse:
    """Partial update by the creator. Unrecognised or ill-typed fields are ignored."""
    user_id = require_user(caller)
    video = await video_store.update(video_id, user_id, patch)
    log_audit(
        AuditAction.VIDEO_UPDATE,
        actor_id=user_id,
        resource_type="video",
        resource_id=video_id,
        resource_name=video.title,
        details={"fields": sorted(patch.keys())},
        **request_audit_fields(request),
    )
    return video


@app.delete("/api/videos/{video_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("delete_video", "Failed to delete video")
async def delete_video(
    request: Request,
    video_id: str,
    caller: Caller = Depends(get_caller),
) -> OkResponse:
    user_id = require_user(caller)
    await video_store.delete(video_id, user_id, upload_storage)
    log_audit(
        AuditAction.VIDEO_DELETE,
        actor_id=user_id,
        resource_type="video",
        resource_id=video_id,
        **request_audit_fields(request),
    )
    return OkResponse()


@app.post("/api/videos/{video_id}/view")
@limiter.limit(RATE_LIMIT_VIEWS)
@handle_api_exceptions("record_view", "Failed to record view")
async def record_view(request: Request, video_id: str) -> ViewCountResponse:
    """Count one view. Anonymous, not de-duplicated."""
    return ViewCountResponse(views=await video_store.record_view(video_id))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT)
