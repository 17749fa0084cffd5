from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from auth import create_access_token, hash_password, verify_password
from models import Budget, BudgetType, Category, Transaction, TransactionType, User
from money import from_cents, percentage, to_cents
from periods import Period, month_range
from schemas import (
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    LoginIn,
    RegisterIn,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

ZERO = from_cents(0)
MONTH_RANGE_MESSAGE = "Month must be between 1 and 12"
CATEGORY_NAME_TAKEN = "Category with this name already exists"


class InvalidInput(ValueError):
    pass


class CategoryNotFound(ValueError):
    pass


class EmailAlreadyExists(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code is not None:
        return code == "23505"
    if getattr(orig, "sqlite_errorname", None) == "SQLITE_CONSTRAINT_UNIQUE":
        return True
    return "UNIQUE constraint failed" in str(orig)


def validate_month(month: int) -> None:
    if month < 1 or month > 12:
        raise InvalidInput(MONTH_RANGE_MESSAGE)


def duplicate_budget_message(
    category_id: str, budget_type: BudgetType, month: int, year: int
) -> str:
    return (
        f"Budget for category {category_id}, type {BudgetType(budget_type).value}, "
        f"month {month}, and year {year} already exists"
    )


def transaction_type_for_budget(budget_type: BudgetType) -> TransactionType:
    if budget_type == BudgetType.expense:
        return TransactionType.expense
    return TransactionType.income


def utilization(spent: Decimal, amount: Decimal) -> float:
    if amount > 0:
        return percentage(spent, amount)
    return 0.0


async def commit_unique(session: AsyncSession, message: str) -> None:
    """Commit, turning a unique-constraint violation into ``InvalidInput(message)``."""
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise InvalidInput(message) from exc
        raise


async def require_category(categories: CategoryService, category_id: str) -> Category:
    try:
        return await categories.get(category_id)
    except CategoryNotFound as exc:
        raise InvalidInput(f"Category with ID {category_id} does not exist") from exc


class AuthService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def register(self, data: RegisterIn) -> str:
        password_hash = await asyncio.to_thread(hash_password, data.password)
        user = User(name=data.name.strip(), email=data.email, password_hash=password_hash)
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            if is_unique_violation(exc):
                raise EmailAlreadyExists("Email already exists") from exc
            raise
        logger.info(f"user_registered: user_id={user.id}")
        return create_access_token(user.id, user.email)

    async def login(self, data: LoginIn) -> str:
        user = await self.session.scalar(select(User).where(User.email == data.email))
        if not user:
            raise InvalidCredentials("Invalid credentials")
        valid = await asyncio.to_thread(verify_password, data.password, user.password_hash)
        if not valid:
            raise InvalidCredentials("Invalid credentials")
        return create_access_token(user.id, user.email)

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self.session.get(User, user_id)


class CategoryService:
    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    async def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.name, Category.type)
        )
        return list((await self.session.scalars(stmt)).all())

    async def get(self, category_id: str) -> Category:
        category = await self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.user_id == self.user_id
            )
        )
        if not category:
            raise CategoryNotFound(f"Category with ID {category_id} not found")
        return category

    async def _ensure_name_free(
        self, name: str, type_: TransactionType, exclude_id: Optional[str] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == type_,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if await self.session.scalar(stmt):
            raise InvalidInput(CATEGORY_NAME_TAKEN)

    async def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        await self._ensure_name_free(name, data.type)
        category = Category(user_id=self.user_id, name=name, type=data.type)
        self.session.add(category)
        await commit_unique(self.session, CATEGORY_NAME_TAKEN)
        await self.session.refresh(category)
        return category

    async def update(self, category_id: str, data: CategoryUpdate) -> Category:
        category = await self.get(category_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        name = changes.get("name", category.name).strip()
        type_ = changes.get("type", category.type)
        await self._ensure_name_free(name, type_, exclude_id=category.id)
        category.name = name
        category.type = type_
        await commit_unique(self.session, CATEGORY_NAME_TAKEN)
        await self.session.refresh(category)
        return category

    async def delete(self, category_id: str) -> Category:
        category = await self.get(category_id)
        budgets = await self.session.scalar(
            select(func.count(Budget.id)).where(Budget.category_id == category.id)
        )
        transactions = await self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category.id
            )
        )
        if budgets or transactions:
            raise InvalidInput(
                f"Category with ID {category_id} is still used by budgets or transactions"
            )
        await self.session.delete(category)
        await self.session.commit()
        return category


class TransactionService:
    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.categories = CategoryService(session, user_id)

    async def list_all(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def get(self, transaction_id: str) -> Optional[Transaction]:
        return await self.session.scalar(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.user_id == self.user_id,
            )
        )

    async def create(self, data: TransactionIn) -> Transaction:
        await require_category(self.categories, data.category_id)
        txn = Transaction(
            user_id=self.user_id,
            amount_cents=to_cents(data.amount),
            type=data.type,
            category_id=data.category_id,
            date=data.date,
            description=data.description,
        )
        self.session.add(txn)
        await self.session.commit()
        await self.session.refresh(txn)
        return txn

    async def update(
        self, transaction_id: str, data: TransactionUpdate
    ) -> Optional[Transaction]:
        changes = data.model_dump(exclude_unset=True)
        if changes.get("category_id") is not None:
            await require_category(self.categories, changes["category_id"])

        txn = await self.get(transaction_id)
        if txn is None:
            return None

        if changes.get("amount") is not None:
            txn.amount_cents = to_cents(changes["amount"])
        for field in ("type", "category_id", "date"):
            if changes.get(field) is not None:
                setattr(txn, field, changes[field])
        if "description" in changes:
            txn.description = changes["description"]
        await self.session.commit()
        await self.session.refresh(txn)
        return txn

    async def delete(self, transaction_id: str) -> Optional[Transaction]:
        txn = await self.get(transaction_id)
        if txn is None:
            return None
        await self.session.delete(txn)
        await self.session.commit()
        return txn


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None


class TransactionAggregator:
    """Read-only sums over one user's transactions inside a half-open period."""

    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def _conditions(self, period: Period, filters: Optional[TransactionFilters]) -> list:
        conditions = [
            Transaction.user_id == self.user_id,
            Transaction.date >= period.start,
            Transaction.date < period.end,
        ]
        if filters is not None:
            if filters.category_id is not None:
                conditions.append(Transaction.category_id == filters.category_id)
            if filters.type is not None:
                conditions.append(Transaction.type == filters.type)
        return conditions

    async def sum_amount(
        self, period: Period, filters: Optional[TransactionFilters] = None
    ) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            *self._conditions(period, filters)
        )
        return from_cents(await self.session.scalar(stmt))

    async def list_matching(
        self, period: Period, filters: Optional[TransactionFilters] = None
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(*self._conditions(period, filters))
            .order_by(Transaction.date, Transaction.created_at)
        )
        return list((await self.session.scalars(stmt)).all())

    async def sum_by_type(self, period: Period) -> dict[TransactionType, Decimal]:
        stmt = (
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(*self._conditions(period, None))
            .group_by(Transaction.type)
        )
        totals = {txn_type: ZERO for txn_type in TransactionType}
        for row in await self.session.execute(stmt):
            totals[row.type] = from_cents(row.total)
        return totals

    async def sum_by_category(self, period: Period) -> list[tuple[Category, Decimal]]:
        # Ordered by first activity in the period.
        stmt = (
            select(
                Category,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .join(Transaction, Transaction.category_id == Category.id)
            .where(*self._conditions(period, None))
            .group_by(Category.id)
            .order_by(func.min(Transaction.date), Category.id)
        )
        result = await self.session.execute(stmt)
        return [(category, from_cents(total)) for category, total in result]


class BudgetService:
    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.categories = CategoryService(session, user_id)

    def _owned(self):
        return select(Budget).where(Budget.user_id == self.user_id)

    async def list_all(self) -> list[Budget]:
        stmt = self._owned().order_by(
            Budget.year, Budget.month, Budget.created_at, Budget.id
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_for_month(
        self, month: int, year: int, *, with_category: bool = False
    ) -> list[Budget]:
        stmt = (
            self._owned()
            .where(Budget.month == month, Budget.year == year)
            .order_by(Budget.created_at, Budget.id)
        )
        if with_category:
            stmt = stmt.options(selectinload(Budget.category))
        return list((await self.session.scalars(stmt)).all())

    async def list_for_category(self, category_id: str) -> list[Budget]:
        stmt = (
            self._owned()
            .where(Budget.category_id == category_id)
            .order_by(Budget.year, Budget.month, Budget.created_at, Budget.id)
        )
        return list((await self.session.scalars(stmt)).all())

    async def get(self, budget_id: str) -> Optional[Budget]:
        return await self.session.scalar(self._owned().where(Budget.id == budget_id))

    async def _commit_or_duplicate(self, message: str) -> None:
        try:
            await commit_unique(self.session, message)
        except InvalidInput:
            logger.info(f"budget_duplicate_rejected: user_id={self.user_id}")
            raise

    async def create(self, data: BudgetIn) -> Budget:
        validate_month(data.month)
        await require_category(self.categories, data.category_id)

        budget = Budget(
            user_id=self.user_id,
            amount_cents=to_cents(data.amount),
            category_id=data.category_id,
            month=data.month,
            year=data.year,
            type=data.type,
        )
        self.session.add(budget)
        await self._commit_or_duplicate(
            duplicate_budget_message(data.category_id, data.type, data.month, data.year)
        )
        await self.session.refresh(budget)
        logger.info(
            f"budget_created: id={budget.id} user_id={self.user_id} "
            f"period={budget.year}-{budget.month:02d}"
        )
        return budget

    async def update(self, budget_id: str, data: BudgetUpdate) -> Optional[Budget]:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "month" in changes:
            validate_month(changes["month"])
        if "category_id" in changes:
            await require_category(self.categories, changes["category_id"])

        budget = await self.get(budget_id)
        if budget is None:
            return None

        message = duplicate_budget_message(
            changes.get("category_id", budget.category_id),
            changes.get("type", budget.type),
            changes.get("month", budget.month),
            changes.get("year", budget.year),
        )
        if "amount" in changes:
            budget.amount_cents = to_cents(changes["amount"])
        for field in ("category_id", "type", "month", "year"):
            if field in changes:
                setattr(budget, field, changes[field])
        # The owner check above is the gate; the UPDATE itself targets the primary key.
        await self._commit_or_duplicate(message)
        await self.session.refresh(budget)
        logger.info(f"budget_updated: id={budget.id} user_id={self.user_id}")
        return budget

    async def delete(self, budget_id: str) -> Optional[Budget]:
        budget = await self.get(budget_id)
        if budget is None:
            return None
        await self.session.delete(budget)
        await self.session.commit()
        logger.info(f"budget_deleted: id={budget.id} user_id={self.user_id}")
        return budget


@dataclass(frozen=True)
class BudgetWithSpending:
    id: str
    amount: Decimal
    category_id: str
    month: int
    year: int
    type: BudgetType
    spent: Decimal
    remaining: Decimal
    utilization_percentage: float


@dataclass(frozen=True)
class BudgetWithCategory:
    id: str
    amount: Decimal
    category_id: str
    month: int
    year: int
    type: BudgetType
    category: Optional[Category]


@dataclass(frozen=True)
class BudgetDetails(BudgetWithSpending):
    category: Optional[Category]
    transactions: list[Transaction]


def _budget_fields(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "amount": budget.amount,
        "category_id": budget.category_id,
        "month": budget.month,
        "year": budget.year,
        "type": budget.type,
    }


class BudgetAnalyticsService:
    """Spend figures for budgets.

    Every lookup goes through ``BudgetService.get``, so a budget owned by
    someone else reads as missing: zero amounts, ``None`` or an empty list.
    """

    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.budgets = BudgetService(session, user_id)
        self.categories = CategoryService(session, user_id)
        self.transactions = TransactionAggregator(session, user_id)

    @staticmethod
    def _window(budget: Budget) -> tuple[Period, TransactionFilters]:
        filters = TransactionFilters(
            type=transaction_type_for_budget(budget.type),
            category_id=budget.category_id,
        )
        return month_range(budget.month, budget.year), filters

    async def _spent_for(self, budget: Budget) -> Decimal:
        period, filters = self._window(budget)
        return await self.transactions.sum_amount(period, filters)

    async def _category_or_none(self, category_id: str) -> Optional[Category]:
        try:
            return await self.categories.get(category_id)
        except CategoryNotFound:
            return None

    @staticmethod
    def _with_spending(budget: Budget, spent: Decimal) -> BudgetWithSpending:
        return BudgetWithSpending(
            **_budget_fields(budget),
            spent=spent,
            remaining=budget.amount - spent,
            utilization_percentage=utilization(spent, budget.amount),
        )

    async def spent_amount(self, budget_id: str) -> Decimal:
        budget = await self.budgets.get(budget_id)
        if budget is None:
            return ZERO
        return await self._spent_for(budget)

    async def remaining(self, budget_id: str) -> Decimal:
        budget = await self.budgets.get(budget_id)
        if budget is None:
            return ZERO
        return budget.amount - await self._spent_for(budget)

    async def with_spending(self, budget_id: str) -> Optional[BudgetWithSpending]:
        budget = await self.budgets.get(budget_id)
        if budget is None:
            return None
        return self._with_spending(budget, await self._spent_for(budget))

    async def with_category(self, budget_id: str) -> Optional[BudgetWithCategory]:
        budget = await self.budgets.get(budget_id)
        if budget is None:
            return None
        category = await self._category_or_none(budget.category_id)
        return BudgetWithCategory(**_budget_fields(budget), category=category)

    async def transactions_for_budget(self, budget_id: str) -> list[Transaction]:
        budget = await self.budgets.get(budget_id)
        if budget is None:
            return []
        period, filters = self._window(budget)
        return await self.transactions.list_matching(period, filters)

    async def details(self, budget_id: str) -> Optional[BudgetDetails]:
        budget = await self.budgets.get(budget_id)
        if budget is None:
            return None
        category = await self._category_or_none(budget.category_id)
        period, filters = self._window(budget)
        transactions = await self.transactions.list_matching(period, filters)
        spent = await self.transactions.sum_amount(period, filters)
        summary = self._with_spending(budget, spent)
        return BudgetDetails(
            **summary.__dict__, category=category, transactions=transactions
        )

    async def by_category(self, category_id: str) -> list[BudgetWithSpending]:
        results: list[BudgetWithSpending] = []
        for budget in await self.budgets.list_for_category(category_id):
            results.append(self._with_spending(budget, await self._spent_for(budget)))
        return results


@dataclass(frozen=True)
class MonthlySummary:
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal


@dataclass(frozen=True)
class BudgetVsActual:
    category: Category
    budget_amount: Decimal
    actual_amount: Decimal
    difference: Decimal
    percentage_used: float


def percentage_used(budget_amount: Decimal, actual_amount: Decimal) -> float:
    if budget_amount == 0:
        return 100.0 if actual_amount > 0 else 0.0
    return percentage(actual_amount, budget_amount)


class DashboardService:
    def __init__(self, session: AsyncSession, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.budgets = BudgetService(session, user_id)
        self.transactions = TransactionAggregator(session, user_id)

    async def monthly_summary(self, month: int, year: int) -> MonthlySummary:
        totals = await self.transactions.sum_by_type(month_range(month, year))
        income = totals[TransactionType.income]
        expense = totals[TransactionType.expense]
        return MonthlySummary(
            total_income=income, total_expense=expense, balance=income - expense
        )

    async def budget_vs_actual(self, month: int, year: int) -> list[BudgetVsActual]:
        budgets = await self.budgets.list_for_month(month, year, with_category=True)
        actual_by_category = {
            category.id: (category, total)
            for category, total in await self.transactions.sum_by_category(
                month_range(month, year)
            )
        }

        rows: list[BudgetVsActual] = []
        budgeted: set[str] = set()
        for budget in budgets:
            entry = actual_by_category.get(budget.category_id)
            actual = entry[1] if entry else ZERO
            rows.append(
                BudgetVsActual(
                    category=budget.category,
                    budget_amount=budget.amount,
                    actual_amount=actual,
                    difference=budget.amount - actual,
                    percentage_used=percentage_used(budget.amount, actual),
                )
            )
            budgeted.add(budget.category_id)

        for category_id, (category, actual) in actual_by_category.items():
            if category_id in budgeted:
                continue
            rows.append(
                BudgetVsActual(
                    category=category,
                    budget_amount=ZERO,
                    actual_amount=actual,
                    difference=ZERO - actual,
                    percentage_used=percentage_used(ZERO, actual),
                )
            )
        return rows
