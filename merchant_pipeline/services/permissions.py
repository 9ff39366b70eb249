"""
Merchant Pipeline - Permission System
Who may look at the board, move cards, run a repair, read the journal.
A user's explicit `permissions` dict wins; the role only supplies defaults.
"""

import logging
from typing import Dict

from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# PERMISSION KEYS -> ROLES GRANTED BY DEFAULT
# ════════════════════════════════════════════════════════════════════════

PERMISSION_ROLES: Dict[str, tuple] = {
    "pipeline.view": ("super_admin", "admin", "ops", "viewer"),
    "pipeline.reorder": ("super_admin", "admin", "ops"),
    "pipeline.repair": ("super_admin", "admin"),
    "activity.view": ("super_admin", "admin"),
}

DEFAULT_ROLE = "viewer"


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Default permission set of a role (unknown roles get the viewer set)."""
    if not any(role in roles for roles in PERMISSION_ROLES.values()):
        role = DEFAULT_ROLE
    return {key: role in roles for key, roles in PERMISSION_ROLES.items()}


def user_has_permission(user: dict, key: str) -> bool:
    if user.get("role") == "super_admin":
        return True
    perms = user.get("permissions") or get_preset_permissions(user.get("role", DEFAULT_ROLE))
    return perms.get(key, False) is True


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    Dependency factory for the board routes.
    Usage: user: dict = Depends(require_permission("pipeline.reorder"))
    """
    from merchant_pipeline.routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] {permission_key} refused to "
                f"{user.get('email')} (role={user.get('role')})"
            )
            raise HTTPException(status_code=403, detail=f"Permission required: {permission_key}")
        return user

    return _check
