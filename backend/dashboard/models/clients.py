from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Client(db.Model):
    """
    A customer account tracked by the dashboard.

    Visibility is never stored here: who may see a client is derived from
    created_by_id and ClientAssignment rows on every request.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_created_by", "created_by_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    client_type = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "client_type": self.client_type,
            "email": self.email,
            "is_active": self.is_active,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
        }


class ClientAssignment(db.Model):
    """
    Links a user to a client, recording who assigned it and when.

    WHY unique (client_id, user_id): re-assigning refreshes the existing row
    instead of stacking duplicates.
    """
    __tablename__ = "client_assignments"
    __table_args__ = (
        db.UniqueConstraint("client_id", "user_id", name="uq_client_assignments_client_user"),
        db.Index("ix_client_assignments_user", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assigned_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    client = db.relationship("Client", backref=db.backref("assignments", lazy=True, cascade="all, delete-orphan"))
    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("client_assignments", lazy=True))
    assigned_by = db.relationship("User", foreign_keys=[assigned_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "user_id": self.user_id,
            "assigned_by_id": self.assigned_by_id,
            "assigned_at": to_utc_z(self.assigned_at),
            "updated_at": to_utc_z(self.updated_at),
        }
