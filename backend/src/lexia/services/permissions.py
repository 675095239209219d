"""Case permission gate.

Decides whether a user may attach work to a case. A normal denial is a
``False`` return; only a failing authorization source raises.
"""

import logging
from enum import Enum

from lexia.db import Database, InMemoryDatabase

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin_general"
CLIENT_ROLE = "client"
LEADER_ROLE = "leader"


class CaseCapability(str, Enum):
    """Things a user can do on a case."""

    CAN_VIEW = "can_view"
    CAN_EDIT = "can_edit"
    CAN_MANAGE_TEAM = "can_manage_team"
    CAN_DELETE = "can_delete"


class PermissionGate:
    """Checks case capabilities against the authorization tables."""

    def __init__(self, db: Database | InMemoryDatabase):
        self.db = db

    async def can_attach_to_case(
        self,
        user_id: str,
        case_id: str,
        required_capability: CaseCapability = CaseCapability.CAN_VIEW,
    ) -> bool:
        """Can this user perform ``required_capability`` on this case?

        - Admins can do everything.
        - Portal clients can only view, and only cases of their company.
        - Team members need an assignment; managing the team and deleting
          are reserved for the case leader.
        """
        capability = CaseCapability(required_capability)

        system_role = await self.db.get_system_role(user_id)
        if system_role == ADMIN_ROLE:
            return True

        if system_role == CLIENT_ROLE:
            if capability != CaseCapability.CAN_VIEW:
                return False
            return await self.db.is_portal_contact(user_id, case_id)

        case_role = await self.db.get_case_role(case_id, user_id)
        if case_role is None:
            logger.info(f"User {user_id} has no assignment on case {case_id}")
            return False

        if capability in (CaseCapability.CAN_VIEW, CaseCapability.CAN_EDIT):
            return True
        return case_role == LEADER_ROLE
