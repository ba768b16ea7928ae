"""Audit service: append-only log of workflow actions."""

from typing import Any, Sequence

from ..core.store import RecordStore
from ..models import AuditAction, AuditLog


class AuditService:
    """Writes and reads audit entries through the record store."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def log_event(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: Any,
        actor: str,
        details: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Log an audit event as part of the current transaction."""
        entry = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            actor=actor,
            details=details or {},
        )
        return await self.store.put(entry)

    async def history(self, resource_type: str, resource_id: Any) -> Sequence[AuditLog]:
        """All entries for one resource, oldest first."""
        return await self.store.query(
            AuditLog,
            AuditLog.resource_type == resource_type,
            AuditLog.resource_id == str(resource_id),
            order_by=AuditLog.created_at,
        )
