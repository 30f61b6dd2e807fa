from __future__ import annotations

from uuid import UUID

import structlog
from sqlalchemy.orm import sessionmaker

from jadwa.db.connection import get_session_factory, session_scope
from jadwa.db.models import AdminLogModel

logger = structlog.get_logger(__name__)


class AuditLog:
    """Append-only audit trail sink.

    Best-effort: a failed write is logged and swallowed so it can never undo
    or fail the operation being audited.
    """

    def __init__(self, session_factory: sessionmaker | None = None):
        self._session_factory = session_factory

    async def record(
        self,
        actor_id: UUID | None,
        action: str,
        target_type: str | None = None,
        target_id: str | UUID | None = None,
        details: dict | None = None,
    ) -> bool:
        """Log an action to the audit trail.

        Args:
            actor_id: User ID of actor
            action: Action name (e.g., "confirm_payment", "assign_consultant")
            target_type: Type of resource affected
            target_id: ID of resource affected
            details: Additional details (JSON-serialisable)
        """
        audit_entry = AdminLogModel(
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            details=details,
        )

        try:
            async with session_scope(self._session_factory or get_session_factory()) as session:
                session.add(audit_entry)
        except Exception as exc:
            logger.error("audit_write_failed", action=action, target_id=str(target_id), error=str(exc))
            return False

        logger.info("audit_recorded", action=action, target_type=target_type, target_id=str(target_id))
        return True
