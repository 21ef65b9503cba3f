import asyncio
import getpass

from educhat.db.database import AsyncSessionLocal, init_db
from educhat.db.models.user import UserRole
from educhat.services import user_service


async def create_superuser():
    email = input("Enter Admin Email: ")
    password = getpass.getpass("Enter Admin Password: ")
    first_name = input("Enter First Name (Optional): ") or "Admin"
    last_name = input("Enter Last Name (Optional): ") or None

    await init_db()
    async with AsyncSessionLocal() as session:
        print("Creating superuser...")
        admin_user = await user_service.create_user(
            session,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=UserRole.SUPER_ADMIN,  # 관리자 권한 부여
        )
        if admin_user is None:
            print(f"User {email} already exists!")
            return
        print(f"Superuser '{email}' created successfully!")


if __name__ == "__main__":
    asyncio.run(create_superuser())
