from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import delete, exists, func, or_, select, update
from sqlalchemy.orm import Session

from cursor import after_cursor
from models import Budget, Category, Expense, User

CursorKey = tuple[datetime, uuid.UUID]


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Half-open timestamp range covering the calendar days ``start..end``."""
    return (
        datetime.combine(start, time.min),
        datetime.combine(end + timedelta(days=1), time.min),
    )


# users


def create_user(
    session: Session, *, name: str, email: str, password_hash: str, now: datetime
) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=password_hash,
        created_at=now,
        updated_at=now,
    )
    session.add(user)
    session.flush()
    return user


def get_user_by_id(session: Session, user_id: uuid.UUID) -> Optional[User]:
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.scalar(select(User).where(func.lower(User.email) == email.lower()))


def delete_user(session: Session, user_id: uuid.UUID) -> Optional[User]:
    user = session.get(User, user_id)
    if user is None:
        return None
    session.execute(delete(Budget).where(Budget.user_id == user_id))
    session.execute(delete(Expense).where(Expense.user_id == user_id))
    session.execute(delete(Category).where(Category.user_id == user_id))
    session.delete(user)
    session.flush()
    return user


# categories


def create_category(
    session: Session, *, user_id: uuid.UUID, name: str, now: datetime
) -> Category:
    category = Category(user_id=user_id, name=name, created_at=now, updated_at=now)
    session.add(category)
    session.flush()
    return category


def get_category_by_id(
    session: Session, category_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Category]:
    return session.scalar(
        select(Category).where(
            Category.id == category_id, Category.user_id == user_id
        )
    )


def update_category(
    session: Session,
    category_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    name: str,
    now: datetime,
) -> Optional[Category]:
    category = get_category_by_id(session, category_id, user_id)
    if category is None:
        return None
    category.name = name
    category.updated_at = now
    session.flush()
    return category


def category_in_use(
    session: Session, category_id: uuid.UUID, user_id: uuid.UUID
) -> bool:
    expense_ref = exists().where(
        Expense.category_id == category_id, Expense.user_id == user_id
    )
    budget_ref = exists().where(
        Budget.category_id == category_id, Budget.user_id == user_id
    )
    return bool(session.scalar(select(or_(expense_ref, budget_ref))))


def delete_category(
    session: Session, category_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Category]:
    category = get_category_by_id(session, category_id, user_id)
    if category is None:
        return None
    session.delete(category)
    session.flush()
    return category


def list_categories(
    session: Session,
    user_id: uuid.UUID,
    limit: int,
    after: Optional[CursorKey] = None,
) -> Sequence[Category]:
    stmt = select(Category).where(Category.user_id == user_id)
    if after is not None:
        stmt = stmt.where(
            after_cursor(Category.created_at, Category.id, *after, descending=False)
        )
    stmt = stmt.order_by(Category.created_at.asc(), Category.id.desc()).limit(limit)
    return session.scalars(stmt).all()


# expenses


def create_expense(
    session: Session,
    *,
    user_id: uuid.UUID,
    category_id: uuid.UUID,
    description: str,
    amount: Decimal,
    now: datetime,
) -> Expense:
    expense = Expense(
        user_id=user_id,
        category_id=category_id,
        description=description,
        amount=amount,
        created_at=now,
        updated_at=now,
    )
    session.add(expense)
    session.flush()
    return expense


def get_expense_by_id(
    session: Session,
    expense_id: uuid.UUID,
    user_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> Optional[Expense]:
    stmt = select(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    return session.scalar(stmt)


def update_expense(
    session: Session,
    expense: Expense,
    *,
    description: str,
    amount: Decimal,
    category_id: uuid.UUID,
    now: datetime,
) -> Expense:
    expense.description = description
    expense.amount = amount
    expense.category_id = category_id
    expense.updated_at = now
    session.flush()
    return expense


def delete_expense(
    session: Session, expense_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Expense]:
    expense = get_expense_by_id(session, expense_id, user_id, for_update=True)
    if expense is None:
        return None
    session.delete(expense)
    session.flush()
    return expense


def list_expenses(
    session: Session,
    user_id: uuid.UUID,
    limit: int,
    after: Optional[CursorKey] = None,
    *,
    category_id: Optional[uuid.UUID] = None,
) -> Sequence[Expense]:
    stmt = select(Expense).where(Expense.user_id == user_id)
    if category_id is not None:
        stmt = stmt.where(Expense.category_id == category_id)
    if after is not None:
        stmt = stmt.where(
            after_cursor(Expense.created_at, Expense.id, *after, descending=True)
        )
    stmt = stmt.order_by(Expense.created_at.desc(), Expense.id.desc()).limit(limit)
    return session.scalars(stmt).all()


def get_total_spent(
    session: Session, user_id: uuid.UUID, start: date, end: date
) -> Decimal:
    lower, upper = day_bounds(start, end)
    total = session.scalar(
        select(func.coalesce(func.sum(Expense.amount), 0)).where(
            Expense.user_id == user_id,
            Expense.created_at >= lower,
            Expense.created_at < upper,
        )
    )
    return Decimal(total or 0)


def get_total_spent_in_category(
    session: Session,
    user_id: uuid.UUID,
    category_id: uuid.UUID,
    start: date,
    end: date,
) -> Decimal:
    lower, upper = day_bounds(start, end)
    total = session.scalar(
        select(func.coalesce(func.sum(Expense.amount), 0)).where(
            Expense.user_id == user_id,
            Expense.category_id == category_id,
            Expense.created_at >= lower,
            Expense.created_at < upper,
        )
    )
    return Decimal(total or 0)


# budgets


def update_budget_amount(
    session: Session,
    *,
    user_id: uuid.UUID,
    category_id: uuid.UUID,
    delta: Decimal,
    reference_date: date,
) -> int:
    stmt = (
        update(Budget)
        .where(
            Budget.user_id == user_id,
            Budget.category_id == category_id,
            Budget.start_date <= reference_date,
            Budget.end_date >= reference_date,
        )
        .values(amount=Budget.amount + delta)
        .execution_options(synchronize_session="fetch")
    )
    result = session.execute(stmt)
    return result.rowcount or 0


def create_budget(
    session: Session,
    *,
    user_id: uuid.UUID,
    category_id: uuid.UUID,
    goal: Decimal,
    amount: Decimal,
    start_date: date,
    end_date: date,
    now: datetime,
) -> Budget:
    budget = Budget(
        user_id=user_id,
        category_id=category_id,
        goal=goal,
        amount=amount,
        start_date=start_date,
        end_date=end_date,
        created_at=now,
        updated_at=now,
    )
    session.add(budget)
    session.flush()
    return budget


def get_budget_by_id(
    session: Session, budget_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Budget]:
    return session.scalar(
        select(Budget)
        .where(Budget.id == budget_id, Budget.user_id == user_id)
        .execution_options(populate_existing=True)
    )


def delete_budget(
    session: Session, budget_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Budget]:
    budget = get_budget_by_id(session, budget_id, user_id)
    if budget is None:
        return None
    session.delete(budget)
    session.flush()
    return budget


def list_budgets(
    session: Session,
    user_id: uuid.UUID,
    limit: int,
    after: Optional[CursorKey] = None,
) -> Sequence[Budget]:
    stmt = select(Budget).where(Budget.user_id == user_id)
    if after is not None:
        stmt = stmt.where(
            after_cursor(Budget.created_at, Budget.id, *after, descending=False)
        )
    stmt = (
        stmt.order_by(Budget.created_at.asc(), Budget.id.desc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return session.scalars(stmt).all()
