from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class SecurityEvent(db.Model):
    """
    One row per rejected request or access-changing write.

    Written by permission_service.log_security_event and read back by
    GET /api/system/security-events (Activities page).

    Rows are append-only. Never store the bearer credential, a password
    hash or a Role permissions document here.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable for anonymous / unresolved callers; no FK so audit rows outlive users
    user_id = db.Column(db.Integer, nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # AUTH_REJECTED, PERMISSION_DENIED, ROLE_UPDATED, etc.
    resource = db.Column(db.String(255), nullable=True)  # e.g., "/api/clients/4/assign"
    action = db.Column(db.String(64), nullable=True)     # e.g., "POST", "Clients:Delete"

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)  # e.g., "CANNOT_MANAGE_USER target=12"

    # Caller
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
