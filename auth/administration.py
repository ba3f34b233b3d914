"""
auth/administration.py -- Who may administer whom.

Rules, evaluated in order (first match wins):

  1. Anyone may administer themselves.
  2. Nobody else may administer a site administrator.
  3. A site administrator may administer anyone else.
  4. If the target belongs to a group in any tenant context where the
     administrator is not a manager, refuse. Managing one tenant never
     grants control over a user who also belongs to another tenant.
  5. The administrator must be a manager somewhere; otherwise refuse.
  6. Permit.

Anything ambiguous ends in refusal.

Layer rule: imports from auth/ only. Composes RoleStore and UserGroupStore
results; neither store knows about the other.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auth.models import CONTEXT_SITE, ROLE_ID_MANAGER, ROLE_ID_SITE_ADMIN

if TYPE_CHECKING:
    from auth.store import RoleStore, UserGroupStore

logger = logging.getLogger("tenantguard.auth.administration")


class AdministrationPermissionEvaluator:
    def __init__(self, role_store: RoleStore, user_group_store: UserGroupStore) -> None:
        self.role_store = role_store
        self.user_group_store = user_group_store

    def can_administer(self, administered_user_id: int, administrator_user_id: int) -> bool:
        """Return True iff administrator_user_id may administer administered_user_id."""
        if administered_user_id == administrator_user_id:
            return True

        if self.role_store.user_has_role(CONTEXT_SITE, administered_user_id, ROLE_ID_SITE_ADMIN):
            return False

        if self.role_store.user_has_role(CONTEXT_SITE, administrator_user_id, ROLE_ID_SITE_ADMIN):
            return True

        # Group memberships in contexts the administrator does not manage
        for group in self.user_group_store.get_by_user_id(administered_user_id):
            if group.context_id == CONTEXT_SITE:
                continue
            if not self.role_store.user_has_role(group.context_id, administrator_user_id, ROLE_ID_MANAGER):
                logger.debug(
                    "User %d may not administer user %d: unmanaged context %d",
                    administrator_user_id,
                    administered_user_id,
                    group.context_id,
                )
                return False

        roles = self.role_store.get_by_user_id(administrator_user_id)
        return any(role.role_id == ROLE_ID_MANAGER for role in roles)
