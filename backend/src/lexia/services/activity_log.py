"""Activity log service.

Records completed actions for the "Actividad reciente" feed. Logging is
best-effort: a failing write is logged and never fails the caller.
"""

import logging
from typing import Any

from lexia.db import Database, InMemoryDatabase
from lexia.errors import PersistenceError

logger = logging.getLogger(__name__)


class ActivityLog:
    """Best-effort audit sink."""

    def __init__(self, db: Database | InMemoryDatabase):
        self.db = db

    async def record(
        self,
        user_id: str,
        action_type: str,
        entity_type: str,
        entity_id: str,
        description: str,
        case_id: str | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        """Insert an activity entry, swallowing storage failures."""
        try:
            await self.db.log_activity(
                user_id=user_id,
                action_type=action_type,
                entity_type=entity_type,
                entity_id=entity_id,
                description=description,
                case_id=case_id,
                new_values=new_values,
            )
        except PersistenceError as e:
            logger.error(f"Failed to log activity {action_type} on {entity_type} {entity_id}: {e}")
