# Overview: Flask API routes for system operations; health, role-migration progress and audit log.

# backend/dashboard/routes/system.py
"""
System endpoints.

- /health: database connectivity for deploy checks
- /role-migration: how many users still rely on a legacy role tag
- /security-events: audit trail (Activities page)
"""

import time
from flask import Blueprint, jsonify, request, g, current_app

from ..errors import ErrorCode, error_response
from ..extensions import db
from ..models import User, Role, SecurityEvent
from ..permissions import Page
from ..services import permission_service
from ..decorators import require_auth, require_full_access, require_page_access

system_bp = Blueprint("system", __name__, url_prefix="/api/system")

MAX_EVENTS = 500


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        role_count = db.session.query(Role).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "roles": role_count,
            }
        }
    except Exception as e:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "error": type(e).__name__,
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({"status": database["status"], "database": database}), status_code


@system_bp.get("/role-migration")
@require_auth
@require_full_access
def role_migration_status():
    """Migration progress off legacy role tags."""
    total = db.session.query(User).count()
    unmigrated = permission_service.count_unmigrated_users()
    return jsonify({
        "success": True,
        "total_users": total,
        "unmigrated_users": unmigrated,
        "migrated_users": total - unmigrated,
        "by_legacy_role": permission_service.unmigrated_breakdown(),
        "complete": unmigrated == 0,
    })


@system_bp.get("/security-events")
@require_auth
@require_page_access(Page.ACTIVITIES)
def list_security_events():
    """
    Recent security events, newest first.

    Full-access users see every event; everyone else sees their own.

    Query params:
    - limit: int (default 100, max 500)
    - event_type: str
    """
    try:
        limit = min(max(request.args.get("limit", 100, type=int), 1), MAX_EVENTS)
        event_type = request.args.get("event_type")

        query = db.session.query(SecurityEvent)
        if not permission_service.has_full_access(g.current_user):
            query = query.filter(SecurityEvent.user_id == g.current_user.id)
        if event_type:
            query = query.filter(SecurityEvent.event_type == event_type)

        events = query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
        return jsonify({"success": True, "events": [e.to_dict() for e in events], "count": len(events)})

    except Exception:
        current_app.logger.exception("Failed to list security events")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)
