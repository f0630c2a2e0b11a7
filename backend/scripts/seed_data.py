"""Seed the database with a demo family household.

Creates one parent account on the free plan, a household with a second
adult, two children with PINs, a few bills and calendar events, and one
live caregiver code.

Run inside Docker:
    docker compose exec backend python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from familyhub.auth.passwords import hash_password
from familyhub.auth.verification import generate_token, set_child_pin
from familyhub.database import async_session_factory, utcnow
from familyhub.models.bill import Bill
from familyhub.models.calendar_event import CalendarEvent
from familyhub.models.child import ChildProfile
from familyhub.models.household import Household, HouseholdMember
from familyhub.models.user import User
from familyhub.services.subscription_service import ensure_default_subscription

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_PARENT = {"email": "demo@familyhub.app", "password": "demo1234", "name": "Alex Rivera"}
SECOND_PARENT = {"email": "partner@familyhub.app", "password": "demo1234", "name": "Sam Rivera"}

CHILDREN = [
    {"display_name": "Mia", "avatar_selection": "fox", "pin": "1234"},
    {"display_name": "Leo", "avatar_selection": "owl", "pin": "5678"},
]

BILLS = [
    {"name": "Electricity", "amount": Decimal("84.20"), "category": "utilities", "due_in_days": 5},
    {"name": "Internet", "amount": Decimal("49.99"), "category": "utilities", "due_in_days": 12},
    {"name": "Swim lessons", "amount": Decimal("120.00"), "category": "kids", "due_in_days": 20},
]

EVENTS = [
    {"title": "Dentist: Mia", "category": "health", "in_days": 2, "hours": 1},
    {"title": "Soccer practice", "category": "sports", "in_days": 3, "hours": 2},
    {"title": "Grandma visits", "category": "family", "in_days": 9, "hours": 4},
]


async def _remove_user(session, email: str) -> None:
    result = await session.execute(select(User).where(User.email == email))
    existing = result.scalar_one_or_none()
    if existing is None:
        return
    # Households cascade to members, children, tokens, bills and events
    await session.execute(delete(Household).where(Household.owner_id == existing.id))
    await session.execute(delete(User).where(User.id == existing.id))
    await session.flush()


# ---------------------------------------------------------------------------
# Main seed function
# ---------------------------------------------------------------------------


async def seed() -> None:
    """Populate the database with a demo household. Idempotent: re-seeds from scratch."""
    async with async_session_factory() as session:
        for account in (DEMO_PARENT, SECOND_PARENT):
            await _remove_user(session, account["email"])

        # 1. Accounts and the owner's free subscription
        owner = User(
            email=DEMO_PARENT["email"],
            hashed_password=hash_password(DEMO_PARENT["password"]),
            name=DEMO_PARENT["name"],
        )
        partner = User(
            email=SECOND_PARENT["email"],
            hashed_password=hash_password(SECOND_PARENT["password"]),
            name=SECOND_PARENT["name"],
        )
        session.add_all([owner, partner])
        await session.flush()

        # 2. Household and memberships
        household = Household(owner_id=owner.id, name="The Riveras", description="Demo household")
        session.add(household)
        await session.flush()
        session.add_all(
            [
                HouseholdMember(household_id=household.id, user_id=owner.id, role="owner"),
                HouseholdMember(household_id=household.id, user_id=partner.id, role="admin"),
            ]
        )
        await ensure_default_subscription(session, owner.id, household.id)
        print(f"✅ Created household '{household.name}' (id={household.id})")

        # 3. Children
        for data in CHILDREN:
            child = ChildProfile(
                household_id=household.id,
                display_name=data["display_name"],
                avatar_selection=data["avatar_selection"],
                created_by=owner.id,
            )
            session.add(child)
            await session.flush()
            await set_child_pin(session, child, data["pin"])
            print(f"   🧒 {child.display_name} (PIN {data['pin']})")

        # 4. Bills and events
        today = date.today()
        for data in BILLS:
            session.add(
                Bill(
                    household_id=household.id,
                    created_by=owner.id,
                    name=data["name"],
                    amount=data["amount"],
                    category=data["category"],
                    due_date=today + timedelta(days=data["due_in_days"]),
                )
            )
        now = utcnow().replace(minute=0, second=0, microsecond=0)
        for data in EVENTS:
            start: datetime = now + timedelta(days=data["in_days"])
            session.add(
                CalendarEvent(
                    household_id=household.id,
                    creator_id=owner.id,
                    title=data["title"],
                    category=data["category"],
                    start_datetime=start,
                    end_datetime=start + timedelta(hours=data["hours"]),
                )
            )

        # 5. One caregiver code
        token = await generate_token(session, household.id, created_by=owner.id)
        await session.commit()

        print()
        print("=" * 60)
        print("📊 Seed Summary")
        print("=" * 60)
        print(f"   Owner:          {DEMO_PARENT['email']} / {DEMO_PARENT['password']} (free plan)")
        print(f"   Second adult:   {SECOND_PARENT['email']} / {SECOND_PARENT['password']}")
        print(f"   Children:       {len(CHILDREN)}")
        print(f"   Bills / events: {len(BILLS)} / {len(EVENTS)}")
        print(f"   Caregiver code: {token.token} (expires {token.expires_at:%H:%M} UTC)")
        print("=" * 60)
        print("🎉 Done! You can now log in at /api/v1/auth/login")


if __name__ == "__main__":
    asyncio.run(seed())
