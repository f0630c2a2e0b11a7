"""SQLAlchemy models for FamilyHub.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from familyhub.models.bill import Bill
from familyhub.models.calendar_event import CalendarEvent
from familyhub.models.child import ChildProfile
from familyhub.models.household import Household, HouseholdMember
from familyhub.models.nanny_token import NannyAccessToken
from familyhub.models.subscription import Subscription
from familyhub.models.user import User

__all__ = [
    "Bill",
    "CalendarEvent",
    "ChildProfile",
    "Household",
    "HouseholdMember",
    "NannyAccessToken",
    "Subscription",
    "User",
]
