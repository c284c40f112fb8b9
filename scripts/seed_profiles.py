"""Seed demo GenBridge profiles (young adults and seniors with complementary skills)."""
import asyncio
import sys
import uuid
sys.path.insert(0, ".")

from sqlalchemy import select
from app.database import async_session_factory
from app.models.profile import Profile
from app.services.role_service import RoleService

# Fixed ids so re-running the script is idempotent.
DEMO_PROFILES = [
    {
        "user_id": uuid.UUID("00000000-0000-4000-8000-000000000001"),
        "full_name": "Auntie Mei Ling",
        "age_group": "65+",
        "location": "Toa Payoh",
        "bio": "Retired home cook. Happy to share Peranakan recipes.",
        "skills_offered": ["Nyonya Cooking", "Mandarin", "Knitting"],
        "skills_wanted": ["Smartphone Basics", "Video Calls"],
        "skills_proficiency": {"Nyonya Cooking": "expert", "Mandarin": "advanced"},
        "skill_exchange_duration": "60",
        "credibility_score": 72,
        "joining_reason": "To stay connected with younger Singaporeans",
    },
    {
        "user_id": uuid.UUID("00000000-0000-4000-8000-000000000002"),
        "full_name": "Uncle Raj",
        "age_group": "65+",
        "location": "Jurong West",
        "bio": "Former accountant, plays the tabla on weekends.",
        "skills_offered": ["Accounting", "Tabla", "Tamil"],
        "skills_wanted": ["Python", "Photo Editing"],
        "skills_proficiency": {"Accounting": "expert", "Tabla": "intermediate"},
        "skill_exchange_duration": "90",
        "credibility_score": 65,
        "joining_reason": "Learn new technology",
    },
    {
        "user_id": uuid.UUID("00000000-0000-4000-8000-000000000003"),
        "full_name": "Jia Hui",
        "age_group": "18-25",
        "location": "Clementi",
        "bio": "Poly student in IT. Love teaching phones and apps.",
        "skills_offered": ["Smartphone Basics", "Python", "Video Calls"],
        "skills_wanted": ["Nyonya Cooking", "Knitting"],
        "skills_proficiency": {"Python": "intermediate", "Smartphone Basics": "advanced"},
        "skill_exchange_duration": "60",
        "credibility_score": 48,
        "joining_reason": "Give back to the community",
    },
    {
        "user_id": uuid.UUID("00000000-0000-4000-8000-000000000004"),
        "full_name": "Hafiz",
        "age_group": "26-35",
        "location": "Tampines",
        "bio": "Photographer and weekend futsal player.",
        "skills_offered": ["Photo Editing", "Photography"],
        "skills_wanted": ["Accounting", "Tabla"],
        "skills_proficiency": {"Photography": "expert"},
        "skill_exchange_duration": "120",
        "credibility_score": 55,
        "joining_reason": "Learn traditional music",
    },
]

MODERATOR_USER_ID = uuid.UUID("00000000-0000-4000-8000-0000000000ff")


async def seed():
    async with async_session_factory() as session:
        for data in DEMO_PROFILES:
            existing = await session.execute(
                select(Profile).where(Profile.user_id == data["user_id"])
            )
            if existing.scalar_one_or_none() is None:
                session.add(Profile(**data))
                print(f"  Seeded profile {data['full_name']} ({data['age_group']})")
            else:
                print(f"  Profile {data['full_name']} already exists, skipping.")

        await RoleService().grant_role(MODERATOR_USER_ID, "moderator", session)
        print(f"  Moderator role ensured for {MODERATOR_USER_ID}")
        await session.commit()
    print("Done seeding profiles.")


if __name__ == "__main__":
    asyncio.run(seed())
