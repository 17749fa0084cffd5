import os
from datetime import datetime
from decimal import Decimal

os.environ.setdefault("LEDGER_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LEDGER_SECRET_KEY", "test-secret")

import pytest_asyncio

from database import Base, build_engine, make_sessionmaker
from models import Category, Transaction, TransactionType, User
from money import to_cents


@pytest_asyncio.fixture
async def engine():
    eng = build_engine("sqlite+aiosqlite:///:memory:")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


async def add_user(session, email: str) -> User:
    user = User(name=email.split("@")[0], email=email, password_hash="unused")
    session.add(user)
    await session.commit()
    return user


async def add_category(session, user_id: str, name: str, type_=TransactionType.expense) -> Category:
    category = Category(user_id=user_id, name=name, type=type_)
    session.add(category)
    await session.commit()
    return category


async def add_transaction(
    session,
    user_id: str,
    category_id: str,
    amount: str,
    when: datetime,
    type_=TransactionType.expense,
) -> Transaction:
    txn = Transaction(
        user_id=user_id,
        category_id=category_id,
        amount_cents=to_cents(Decimal(amount)),
        date=when,
        type=type_,
    )
    session.add(txn)
    await session.commit()
    return txn


@pytest_asyncio.fixture
async def owner_id(session) -> str:
    return (await add_user(session, "owner@example.com")).id


@pytest_asyncio.fixture
async def stranger_id(session) -> str:
    return (await add_user(session, "stranger@example.com")).id
