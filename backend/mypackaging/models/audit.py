from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only activity log.

    Rows are written inside the same DB transaction as the change they
    describe, so a rolled-back sale leaves no audit trace behind.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_category_occurred", "category", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    actor = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(512), nullable=False)
    category = db.Column(db.String(16), nullable=False, default="action")
    payload = db.Column(db.JSON, nullable=True)
    source = db.Column(db.String(64), nullable=False, default="mypackaging_system")
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "actor": self.actor,
            "description": self.description,
            "category": self.category,
            "payload": self.payload or {},
            "source": self.source,
            "occurred_at": to_utc_z(self.occurred_at),
        }
