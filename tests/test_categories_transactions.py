from datetime import datetime, timezone
from decimal import Decimal

import pytest

from models import TransactionType
from schemas import CategoryIn, CategoryUpdate, TransactionIn, TransactionUpdate
from services import (
    CategoryNotFound,
    CategoryService,
    InvalidInput,
    TransactionService,
)


@pytest.mark.asyncio
async def test_category_crud_is_scoped_to_owner(session, owner_id, stranger_id) -> None:
    categories = CategoryService(session, owner_id)
    food = await categories.create(CategoryIn(name=" Food ", type="expense"))
    assert food.name == "Food"
    assert food.type == TransactionType.expense

    with pytest.raises(InvalidInput, match="Category with this name already exists"):
        await categories.create(CategoryIn(name="food", type=TransactionType.expense))

    # Same name under the other type is allowed.
    await categories.create(CategoryIn(name="Food", type=TransactionType.income))

    renamed = await categories.update(food.id, CategoryUpdate(name="Groceries"))
    assert renamed.name == "Groceries"
    assert [c.name for c in await categories.list_all()] == ["Food", "Groceries"]

    with pytest.raises(CategoryNotFound, match=f"Category with ID {food.id} not found"):
        await CategoryService(session, stranger_id).get(food.id)
    assert await CategoryService(session, stranger_id).list_all() == []


@pytest.mark.asyncio
async def test_category_delete_refuses_when_in_use(session, owner_id) -> None:
    categories = CategoryService(session, owner_id)
    food = await categories.create(CategoryIn(name="Food", type=TransactionType.expense))
    spare = await categories.create(CategoryIn(name="Spare", type=TransactionType.expense))

    await TransactionService(session, owner_id).create(
        TransactionIn(
            amount=Decimal("12.50"),
            type=TransactionType.expense,
            category_id=food.id,
            date=datetime(2026, 1, 3),
        )
    )
    with pytest.raises(InvalidInput, match="still used"):
        await categories.delete(food.id)

    deleted = await categories.delete(spare.id)
    assert deleted.id == spare.id
    with pytest.raises(CategoryNotFound):
        await categories.get(spare.id)


@pytest.mark.asyncio
async def test_transaction_requires_owned_category(session, owner_id, stranger_id) -> None:
    theirs = await CategoryService(session, stranger_id).create(
        CategoryIn(name="Theirs", type=TransactionType.expense)
    )
    transactions = TransactionService(session, owner_id)
    with pytest.raises(InvalidInput, match=f"Category with ID {theirs.id} does not exist"):
        await transactions.create(
            TransactionIn(
                amount=Decimal("5"),
                type=TransactionType.expense,
                category_id=theirs.id,
                date=datetime(2026, 1, 3),
            )
        )


@pytest.mark.asyncio
async def test_transaction_update_and_delete(session, owner_id, stranger_id) -> None:
    food = await CategoryService(session, owner_id).create(
        CategoryIn(name="Food", type=TransactionType.expense)
    )
    transactions = TransactionService(session, owner_id)
    txn = await transactions.create(
        TransactionIn(
            amount=Decimal("10.00"),
            type=TransactionType.expense,
            category_id=food.id,
            date=datetime(2026, 1, 3, 22, tzinfo=timezone.utc),
            description="lunch",
        )
    )
    assert txn.date == datetime(2026, 1, 3, 22)
    assert txn.amount == Decimal("10.00")

    updated = await transactions.update(
        txn.id, TransactionUpdate(amount=Decimal("11.25"), description=None)
    )
    assert updated.amount == Decimal("11.25")
    assert updated.description is None
    assert updated.category_id == food.id

    assert await TransactionService(session, stranger_id).get(txn.id) is None
    assert await TransactionService(session, stranger_id).delete(txn.id) is None
    assert await transactions.update("missing", TransactionUpdate(amount=Decimal("1"))) is None

    deleted = await transactions.delete(txn.id)
    assert deleted.id == txn.id
    assert await transactions.list_all() == []


@pytest.mark.asyncio
async def test_name_race_is_caught_by_the_constraint(session, owner_id, monkeypatch) -> None:
    categories = CategoryService(session, owner_id)
    await categories.create(CategoryIn(name="Food", type=TransactionType.expense))
    rent_id = (await categories.create(CategoryIn(name="Rent", type=TransactionType.expense))).id

    # A concurrent writer can slip past the name lookup; the unique constraint still decides.
    async def name_looks_free(*args, **kwargs) -> None:
        return None

    monkeypatch.setattr(CategoryService, "_ensure_name_free", name_looks_free)

    with pytest.raises(InvalidInput, match="^Category with this name already exists$"):
        await categories.create(CategoryIn(name="Food", type=TransactionType.expense))
    with pytest.raises(InvalidInput, match="^Category with this name already exists$"):
        await categories.update(rent_id, CategoryUpdate(name="Food"))

    names = sorted(c.name for c in await categories.list_all())
    assert names == ["Food", "Rent"]
