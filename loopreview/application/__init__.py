# Application Layer
# =================
# Orchestrates domain rules over the infrastructure:
# - scheduler.py:       AutomationService (event -> pending jobs, backfill)
# - dispatcher.py:      one dispatch cycle over due jobs
# - duplicate_guard.py: best-effort dedup before insert
# - access.py:          session resolution and the automation entitlement check
from .access import AccessCheck, check_automation_access, require_automation_access, resolve_session
from .dispatcher import Dispatcher, DispatchResult, DispatchSummary
from .duplicate_guard import DuplicateGuard
from .scheduler import AutomationService, BackfillResult, build_automation_service

__all__ = [
    "AccessCheck",
    "AutomationService",
    "BackfillResult",
    "DispatchResult",
    "DispatchSummary",
    "Dispatcher",
    "DuplicateGuard",
    "build_automation_service",
    "check_automation_access",
    "require_automation_access",
    "resolve_session",
]
