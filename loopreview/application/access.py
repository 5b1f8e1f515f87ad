"""
Automation Access
=================

Session resolution and the subscription entitlement check that gates every
automation endpoint. Automation is a paid feature: the owner needs an
active Pro or Enterprise plan.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..domain.errors import AccessDeniedError
from ..domain.models import User
from ..infrastructure.persistence import Database

logger = logging.getLogger(__name__)

ACTIVE_STATUS = "active"


@dataclass
class AccessCheck:
    has_access: bool
    user_id: Optional[int] = None
    error: Optional[str] = None
    status_code: int = 200


def check_automation_access(user: Optional[User], entitled_tiers: Iterable[str]) -> AccessCheck:
    """Decide whether a business owner may use automation."""
    if user is None:
        return AccessCheck(False, error="User not found", status_code=401)

    tier = (user.subscription_type or "").lower()
    status = (user.subscription_status or "").lower()

    if tier not in tuple(entitled_tiers) or status != ACTIVE_STATUS:
        return AccessCheck(
            False,
            user_id=user.id,
            error="Automation features require Pro or Enterprise subscription",
            status_code=403,
        )

    return AccessCheck(True, user_id=user.id)


def resolve_session(database: Database, session_token: Optional[str]) -> User:
    """
    Turn a session cookie into the logged-in user.

    Raises:
        AccessDeniedError: 401 when the cookie is missing, unknown, or points
            at a deleted user.
    """
    if not session_token:
        raise AccessDeniedError("Not authenticated", status_code=401)

    user_id = database.get_user_id_for_session(session_token)
    if user_id is None:
        raise AccessDeniedError("Invalid session", status_code=401)

    user = database.get_user(user_id)
    if user is None:
        raise AccessDeniedError("User not found", status_code=401)
    return user


def require_automation_access(
    database: Database,
    session_token: Optional[str],
    entitled_tiers: Iterable[str],
) -> User:
    """resolve_session + check_automation_access; raises AccessDeniedError."""
    user = resolve_session(database, session_token)
    check = check_automation_access(user, entitled_tiers)
    if not check.has_access:
        logger.info(f"Automation denied for user {user.id}: {check.error}")
        raise AccessDeniedError(check.error, status_code=check.status_code)
    return user
