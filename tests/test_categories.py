import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import sessionmaker

from database import Base, _enable_sqlite_pragmas
from errors import CategoryInUse, CategoryNotFound, InvalidCursor, PersistenceError
from models import Category, User
from schemas import BudgetIn, CategoryIn, ExpenseIn
from services import BudgetService, CategoryService, ExpenseService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    event.listen(engine, "connect", _enable_sqlite_pragmas)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_user(session, email: str = "ana@example.com") -> User:
    user = User(name="Ana", email=email, password_hash="unused")
    session.add(user)
    session.commit()
    return user


def test_categories_page_oldest_first_without_gaps() -> None:
    session = make_session()
    user = make_user(session)
    created = [
        CategoryService(
            session, user.id, clock=lambda day=day: datetime(2025, 1, day)
        ).create(CategoryIn(name=f"Category {day}"))
        for day in range(1, 6)
    ]
    cats = CategoryService(session, user.id)

    seen = []
    cursor = None
    while True:
        page = cats.list(2, cursor)
        seen.extend(c.id for c in page.items)
        if page.next_cursor is None:
            break
        cursor = page.next_cursor

    assert seen == [c.id for c in created]


def test_categories_sharing_a_timestamp_are_not_skipped() -> None:
    session = make_session()
    user = make_user(session)
    same_time = CategoryService(session, user.id, clock=lambda: datetime(2025, 1, 1))
    created = [same_time.create(CategoryIn(name=name)) for name in "ABCD"]
    cats = CategoryService(session, user.id)

    first = cats.list(3)
    second = cats.list(3, first.next_cursor)

    ids = [c.id for c in first.items] + [c.id for c in second.items]
    assert sorted(ids) == sorted(c.id for c in created)
    assert ids == sorted(ids, reverse=True)
    assert second.next_cursor is None


def test_exact_multiple_of_limit_ends_with_empty_page() -> None:
    session = make_session()
    user = make_user(session)
    cats = CategoryService(session, user.id)
    cats.create(CategoryIn(name="Food"))
    cats.create(CategoryIn(name="Rent"))

    first = cats.list(2)
    second = cats.list(2, first.next_cursor)

    assert len(first.items) == 2
    assert first.next_cursor is not None
    assert second.items == []
    assert second.next_cursor is None


def test_empty_list_is_not_an_error() -> None:
    session = make_session()
    user = make_user(session)

    page = CategoryService(session, user.id).list(10)

    assert page.items == []
    assert page.next_cursor is None


def test_lists_are_scoped_to_the_user() -> None:
    session = make_session()
    ana = make_user(session)
    eve = make_user(session, email="eve@example.com")
    CategoryService(session, ana.id).create(CategoryIn(name="Food"))

    assert CategoryService(session, eve.id).list(10).items == []
    with pytest.raises(InvalidCursor):
        CategoryService(session, eve.id).list(10, "%%%")


def test_rename_category() -> None:
    session = make_session()
    user = make_user(session)
    food = CategoryService(session, user.id).create(CategoryIn(name="Food"))

    renamed = CategoryService(session, user.id).rename(
        food.id, CategoryIn(name="  Groceries ")
    )

    assert renamed.id == food.id
    assert CategoryService(session, user.id).get(food.id).name == "Groceries"
    with pytest.raises(CategoryNotFound):
        CategoryService(session, user.id).rename(uuid.uuid4(), CategoryIn(name="X"))


def test_unused_category_can_be_deleted() -> None:
    session = make_session()
    user = make_user(session)
    food = CategoryService(session, user.id).create(CategoryIn(name="Food"))

    deleted = CategoryService(session, user.id).delete(food.id)

    assert deleted.id == food.id
    with pytest.raises(CategoryNotFound):
        CategoryService(session, user.id).get(food.id)


def test_category_with_expenses_or_budgets_cannot_be_deleted() -> None:
    session = make_session()
    user = make_user(session)
    cats = CategoryService(session, user.id)
    food = cats.create(CategoryIn(name="Food"))
    rent = cats.create(CategoryIn(name="Rent"))
    ExpenseService(session, user.id).create(
        ExpenseIn(amount=Decimal("3.00"), category_id=food.id)
    )
    BudgetService(session, user.id).create(
        BudgetIn(
            category_id=rent.id,
            goal=Decimal("900.00"),
            start_date=date(2025, 1, 1),
            end_date=date(2025, 12, 31),
        )
    )

    with pytest.raises(CategoryInUse):
        cats.delete(food.id)
    with pytest.raises(CategoryInUse):
        cats.delete(rent.id)

    assert cats.get(food.id).name == "Food"
    assert cats.get(rent.id).name == "Rent"


def test_expenses_listed_by_category_newest_first() -> None:
    session = make_session()
    user = make_user(session)
    cats = CategoryService(session, user.id)
    food = cats.create(CategoryIn(name="Food"))
    fun = cats.create(CategoryIn(name="Fun"))
    food_expenses = []
    for day in (1, 2, 3):
        expenses = ExpenseService(
            session, user.id, clock=lambda day=day: datetime(2025, 1, day, 12, 0)
        )
        food_expenses.append(
            expenses.create(ExpenseIn(amount=Decimal("1.00"), category_id=food.id))
        )
        expenses.create(ExpenseIn(amount=Decimal("9.00"), category_id=fun.id))

    page = ExpenseService(session, user.id).list_by_category(food.id, 10)

    assert [e.id for e in page.items] == [e.id for e in reversed(food_expenses)]
    assert page.next_cursor is None
    with pytest.raises(CategoryNotFound):
        ExpenseService(session, user.id).list_by_category(uuid.uuid4(), 10)


def test_category_for_missing_user_violates_foreign_key() -> None:
    session = make_session()

    with pytest.raises(PersistenceError):
        CategoryService(session, uuid.uuid4()).create(CategoryIn(name="Food"))

    assert session.scalar(select(func.count()).select_from(Category)) == 0
