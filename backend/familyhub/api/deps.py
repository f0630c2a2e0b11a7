"""Shared API dependencies: single import point for all routers.

Re-exports database session, authentication and plan gating dependencies so
that router modules can import everything they need from one place::

    from familyhub.api.deps import get_db, get_current_active_user
"""

from familyhub.auth.dependencies import (
    HouseholdSession,
    get_current_active_user,
    get_current_user,
    get_household_for_member,
    get_household_reader,
    get_household_session,
)
from familyhub.billing.dependencies import (
    check_bill_limit,
    check_event_limit,
    check_member_limit,
    require_feature,
)
from familyhub.database import get_db

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "get_household_for_member",
    "get_household_reader",
    "get_household_session",
    "HouseholdSession",
    "check_bill_limit",
    "check_event_limit",
    "check_member_limit",
    "require_feature",
]
