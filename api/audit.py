"""
Audit logging for account, video and moderation actions.

Logs to a file with JSON-formatted entries for easy parsing and analysis.
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from api.errors import truncate_string
from config import (
    AUDIT_LOG_BACKUP_COUNT,
    AUDIT_LOG_ENABLED,
    AUDIT_LOG_LEVEL,
    AUDIT_LOG_MAX_BYTES,
    AUDIT_LOG_PATH,
    ERROR_DETAIL_MAX_LENGTH,
    TEST_MODE,
)

# Ensure log directory exists (skip in test mode)
if not TEST_MODE and AUDIT_LOG_ENABLED:
    try:
        AUDIT_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        pass  # Will fall back to console logging


class AuditAction(str, Enum):
    """Audit action types for categorization."""

    # Account actions
    USER_REGISTER = "user_register"
    ADMIN_LOGIN = "admin_login"

    # Uploads
    FILE_UPLOAD = "file_upload"
    LOGO_UPLOAD = "logo_upload"

    # Creator video actions
    VIDEO_CREATE = "video_create"
    VIDEO_UPDATE = "video_update"
    VIDEO_DELETE = "video_delete"

    # Admin moderation actions
    ADMIN_MUTE_OVERRIDE = "admin_mute_override"
    ADMIN_APPROVAL = "admin_approval"
    ADMIN_VISIBILITY = "admin_visibility"
    ADMIN_VIDEO_DELETE = "admin_video_delete"


class AuditLogger:
    """
    Structured audit logger.

    Logs events in JSON format. Falls back to console logging if file logging
    is unavailable.
    """

    def __init__(self, logger_name: str = "vidshare.audit"):
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(getattr(logging, AUDIT_LOG_LEVEL, logging.INFO))
        self.logger.propagate = False

        if not self.logger.handlers:
            self._setup_handlers()

    def _setup_handlers(self):
        formatter = logging.Formatter("%(message)s")  # Raw JSON output

        if AUDIT_LOG_ENABLED:
            try:
                file_handler = RotatingFileHandler(
                    AUDIT_LOG_PATH,
                    maxBytes=AUDIT_LOG_MAX_BYTES,
                    backupCount=AUDIT_LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setFormatter(formatter)
                self.logger.addHandler(file_handler)
            except OSError:
                console_handler = logging.StreamHandler()
                console_handler.setFormatter(formatter)
                self.logger.addHandler(console_handler)
        else:
            self.logger.addHandler(logging.NullHandler())

    def log(
        self,
        action: AuditAction,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        actor_id: Optional[str] = None,
        is_admin: bool = False,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        resource_name: Optional[str] = None,
        details: Optional[dict] = None,
        success: bool = True,
        error: Optional[str] = None,
        request_id: Optional[str] = None,
    ):
        """
        Log an audit event.

        Args:
            action: The type of action being performed
            client_ip: IP address of the client making the request
            user_agent: User-Agent header from the request
            actor_id: Caller-asserted user id, if any
            is_admin: Whether the action used the admin capability
            resource_type: Type of resource (video, user, file)
            resource_id: ID of the affected resource
            resource_name: Human-readable name of the resource (title, filename)
            details: Additional action-specific details
            success: Whether the action succeeded
            error: Error message if action failed
            request_id: Unique request ID for tracing
        """
        if not AUDIT_LOG_ENABLED:
            return

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action.value,
            "success": success,
        }

        if request_id:
            entry["request_id"] = request_id
        if client_ip:
            entry["client_ip"] = client_ip
        if user_agent:
            entry["user_agent"] = truncate_string(user_agent, ERROR_DETAIL_MAX_LENGTH)
        if actor_id:
            entry["actor_id"] = actor_id
        if is_admin:
            entry["admin"] = True
        if resource_type:
            entry["resource_type"] = resource_type
        if resource_id is not None:
            entry["resource_id"] = resource_id
        if resource_name:
            entry["resource_name"] = resource_name
        if details:
            entry["details"] = details
        if error:
            entry["error"] = error[:500]

        try:
            self.logger.info(json.dumps(entry, default=str))
        except Exception:
            # Never let audit logging break the application
            pass


# Singleton instance for use across the application
audit_logger = AuditLogger()


def log_audit(action: AuditAction, **kwargs):
    """
    Convenience function for logging audit events.

    Example usage:
        log_audit(
            AuditAction.ADMIN_VISIBILITY,
            client_ip=get_real_ip(request),
            is_admin=True,
            resource_type="video",
            resource_id=video_id,
            details={"visibility": "private"},
        )
    """
    audit_logger.log(action=action, **kwargs)
