"""
Admin API - login with the fixed admin credential pair and moderate any video.

Mounted into the main app under /api. Every moderation route requires the
admin capability (see api.auth) and skips ownership checks.
"""

import logging

from fastapi import APIRouter, Depends, Request

from api import moderation
from api.audit import AuditAction, log_audit
from api.auth import Caller, check_admin_credentials, get_caller, require_admin
from api.common import get_real_ip, limiter, request_audit_fields, upload_storage
from api.errors import UnauthorizedError
from api.exception_utils import handle_api_exceptions
from api.schemas import (
    AdminLoginRequest,
    AdminLoginResponse,
    ApprovalUpdate,
    MuteOverrideUpdate,
    OkResponse,
    VideoResponse,
    VisibilityUpdate,
)
from config import RATE_LIMIT_DEFAULT, RATE_LIMIT_LOGIN

# Security event logger - separate from regular application logging
security_logger = logging.getLogger("security.auth")

router = APIRouter(prefix="/api")


@router.post("/auth/admin/login")
@limiter.limit(RATE_LIMIT_LOGIN)
@handle_api_exceptions("admin_login", "Admin login failed")
async def admin_login(request: Request, data: AdminLoginRequest) -> AdminLoginResponse:
    """
    Check the fixed admin credentials.

    No session is issued: clients that pass send X-Admin: true on later calls.
    """
    client_ip = get_real_ip(request)
    if not check_admin_credentials(data.username, data.password):
        security_logger.warning(
            "Admin login failed",
            extra={"event": "auth_failure", "reason": "invalid_credentials", "client_ip": client_ip},
        )
        log_audit(AuditAction.ADMIN_LOGIN, success=False, error="invalid credentials", **request_audit_fields(request))
        raise UnauthorizedError("Invalid admin credentials")

    security_logger.info("Admin login succeeded", extra={"event": "auth_success", "client_ip": client_ip})
    log_audit(AuditAction.ADMIN_LOGIN, is_admin=True, **request_audit_fields(request))
    return AdminLoginResponse()


@router.patch("/admin/videos/{video_id}/mute-override")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("admin_mute_override", "Failed to update video")
async def admin_mute_override(
    request: Request,
    video_id: str,
    data: MuteOverrideUpdate,
    caller: Caller = Depends(get_caller),
) -> VideoResponse:
    require_admin(caller)
    video = await moderation.set_mute_override(video_id, data.admin_mute_override)
    log_audit(
        AuditAction.ADMIN_MUTE_OVERRIDE,
        is_admin=True,
        resource_type="video",
        resource_id=video_id,
        resource_name=video.title,
        details={"admin_mute_override": video.settings.admin_mute_override},
        **request_audit_fields(request),
    )
    return video


@router.patch("/admin/videos/{video_id}/approve")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("admin_approve", "Failed to update video")
async def admin_approve(
    request: Request,
    video_id: str,
    data: ApprovalUpdate,
    caller: Caller = Depends(get_caller),
) -> VideoResponse:
    require_admin(caller)
    video = await moderation.set_approval(video_id, data.is_approved)
    log_audit(
        AuditAction.ADMIN_APPROVAL,
        is_admin=True,
        resource_type="video",
        resource_id=video_id,
        resource_name=video.title,
        details={"is_approved": video.settings.is_approved},
        **request_audit_fields(request),
    )
    return video


@router.patch("/admin/videos/{video_id}/visibility")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("admin_visibility", "Failed to update video")
async def admin_visibility(
    request: Request,
    video_id: str,
    data: VisibilityUpdate,
    caller: Caller = Depends(get_caller),
) -> VideoResponse:
    """Set visibility on any video. Setting private notifies the creator."""
    require_admin(caller)
    video = await moderation.set_visibility(video_id, data.visibility)
    log_audit(
        AuditAction.ADMIN_VISIBILITY,
        is_admin=True,
        resource_type="video",
        resource_id=video_id,
        resource_name=video.title,
        details={"visibility": video.settings.visibility},
        **request_audit_fields(request),
    )
    return video


@router.delete("/admin/videos/{video_id}")
@limiter.limit(RATE_LIMIT_DEFAULT)
@handle_api_exceptions("admin_delete_video", "Failed to delete video")
async def admin_delete_video(
    request: Request,
    video_id: str,
    caller: Caller = Depends(get_caller),
) -> OkResponse:
    require_admin(caller)
    await moderation.admin_delete(video_id, upload_storage)
    log_audit(
        AuditAction.ADMIN_VIDEO_DELETE,
        is_admin=True,
        resource_type="video",
        resource_id=video_id,
        **request_audit_fields(request),
    )
    return OkResponse()
