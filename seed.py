import asyncio
import logging

from sqlalchemy import select

from auth import hash_password
from database import session_scope
from models import Category, TransactionType, User

logger = logging.getLogger(__name__)

DEMO_EMAIL = "demo@example.com"
DEMO_PASSWORD = "password123"

DEFAULT_CATEGORIES = {
    TransactionType.income: ["Salary", "Freelance", "Investments"],
    TransactionType.expense: [
        "Food",
        "Transport",
        "Housing",
        "Entertainment",
        "Healthcare",
        "Utilities",
        "Shopping",
        "Education",
    ],
}


async def seed() -> None:
    async with session_scope() as session:
        user = await session.scalar(select(User).where(User.email == DEMO_EMAIL))
        if not user:
            user = User(
                name="Demo User",
                email=DEMO_EMAIL,
                password_hash=hash_password(DEMO_PASSWORD),
            )
            session.add(user)
            await session.flush()
            logger.info(f"seed_user_created: user_id={user.id}")

        existing = set(
            (
                await session.execute(
                    select(Category.type, Category.name).where(
                        Category.user_id == user.id
                    )
                )
            ).tuples()
        )
        created = 0
        for txn_type, names in DEFAULT_CATEGORIES.items():
            for name in names:
                if (txn_type, name) in existing:
                    continue
                session.add(Category(user_id=user.id, name=name, type=txn_type))
                created += 1
        logger.info(f"seed_categories: user_id={user.id} created={created}")


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
