from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labbook.db.models import AuditLogModel

logger = structlog.get_logger(__name__)


def _sanitize(value: Any) -> Any:
    """Make audit metadata JSON-safe."""
    if isinstance(value, dict):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_sanitize(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class AuditLogger:
    """Writes append-only audit entries in their own session.

    Callers queue ``log_action`` on an outbox so a failed insert never undoes
    the business change it describes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def log_action(
        self,
        action: str,
        user_id: UUID | None,
        entity: str,
        entity_id: UUID | str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log an action to the audit trail.

        Args:
            action: Action name (e.g., "booking.approve", "verify_payment")
            user_id: Actor performing the action
            entity: Type of resource affected
            entity_id: ID of resource affected
            details: Additional metadata (old/new status, comment, ...)
        """
        metadata = _sanitize(details or {})
        logger.info(
            "audit_event",
            action=action,
            user_id=str(user_id) if user_id else None,
            entity=entity,
            entity_id=str(entity_id) if entity_id else None,
        )

        entry = AuditLogModel(
            user_id=user_id,
            action=action,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=metadata,
        )
        async with self._session_factory() as session:
            session.add(entry)
            await session.commit()
