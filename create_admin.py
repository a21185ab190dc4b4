import asyncio
import sys
from sqlalchemy.future import select
from app.core.security import hash_password
from app.core.enums import UserRole
from app.db.session import AsyncSessionLocal, engine
from app.models.order import Order  # noqa: F401  registers every mapped table
from app.models.user import User


async def create_admin_user(username: str, password: str, email: str | None = None) -> bool:
    async with AsyncSessionLocal() as db:
        res = await db.execute(select(User).where(User.username == username))
        if res.scalars().first():
            print(f"Error: User '{username}' already exists")
            return False

        user = User(
            username=username,
            password_hash=hash_password(password),
            role=UserRole.ADMIN,
            email=email,
        )
        db.add(user)
        await db.commit()

        print(f"Admin user '{username}' created successfully")
        print(f"User ID: {user.id}")
        print(f"Role: {user.role}")
        return True


async def run(username: str, password: str, email: str | None) -> bool:
    try:
        return await create_admin_user(username, password, email)
    except Exception as e:
        print(f"Error creating admin user: {e}")
        return False
    finally:
        await engine.dispose()


def main():
    if len(sys.argv) < 3:
        print("Usage: python create_admin.py <username> <password> [email]")
        sys.exit(1)

    username = sys.argv[1]
    password = sys.argv[2]
    email = sys.argv[3] if len(sys.argv) > 3 else None

    if not username or not password:
        print("Error: username and password cannot be empty")
        sys.exit(1)

    success = asyncio.run(run(username, password, email))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
