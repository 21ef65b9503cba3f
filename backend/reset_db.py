import asyncio

from sqlalchemy.exc import SQLAlchemyError

from educhat.db.database import engine, Base, AsyncSessionLocal
from educhat.db.models import chat_data, user  # noqa: F401
from educhat.db.models.user import User, UserRole
from educhat.repositories.message_store import MessageStore
from educhat.services import user_service

DEMO_USERS = [
    ("anil.kumar@matsci.edu", "Anil", "Kumar", UserRole.TEACHER),
    ("meera.singh@matsci.edu", "Meera", "Singh", UserRole.TEACHER),
    ("support@matsci.edu", "Support", "Desk", UserRole.SUPPORT),
]


async def reset_database():
    print("Dropping all tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    print("Tables re-created.")

    print("Seeding data...")
    async with AsyncSessionLocal() as session:
        admin = await user_service.upsert_dev_user(session)
        teachers = []
        for email, first_name, last_name, role in DEMO_USERS:
            print(f"   - Creating {email}...")
            teacher = User(email=email, first_name=first_name, last_name=last_name, role=role)
            session.add(teacher)
            teachers.append(teacher)
        await session.commit()

    store = MessageStore()
    anil = teachers[0]
    await store.create_message(anil.id, admin.id, "Good morning! How are your students doing with the new physics concepts?")
    await store.create_message(admin.id, anil.id, "They're adapting well. Some are struggling with quantum mechanics.")
    await store.create_message(anil.id, admin.id, "The physics lab session went well today. Students were very engaged!")
    print(f"Seeding Complete! (admin: {admin.id})")


if __name__ == "__main__":
    try:
        asyncio.run(reset_database())
    except SQLAlchemyError as e:
        print(f"Error during reset: {e}")
