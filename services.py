from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import (
    ACCESS,
    create_token,
    hash_password,
    issue_tokens,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)
from cursor import Page, build_page, decode_cursor
from database import transaction
from errors import (
    BudgetNotFound,
    CategoryInUse,
    CategoryNotFound,
    EmailAlreadyRegistered,
    ExpenseNotFound,
    InvalidInput,
    InvalidToken,
    UserNotFound,
    WrongCredentials,
)
from models import Budget, Category, Expense, User, utcnow
from schemas import BudgetIn, CategoryIn, ExpenseIn, ExpenseUpdate, UserIn
from store import (
    CursorKey,
    category_in_use,
    create_budget,
    create_category,
    create_expense,
    create_user,
    delete_budget,
    delete_category,
    delete_expense,
    delete_user,
    get_budget_by_id,
    get_category_by_id,
    get_expense_by_id,
    get_total_spent,
    get_total_spent_in_category,
    get_user_by_email,
    get_user_by_id,
    list_budgets,
    list_categories,
    list_expenses,
    update_budget_amount,
    update_category,
    update_expense,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _page_args(limit: int, cursor: Optional[str]) -> Optional[CursorKey]:
    if limit < 1:
        raise InvalidInput("limit must be at least 1")
    if not cursor:
        return None
    return decode_cursor(cursor)


def require_category(
    session: Session, user_id: uuid.UUID, category_id: uuid.UUID
) -> Category:
    category = get_category_by_id(session, category_id, user_id)
    if category is None:
        raise CategoryNotFound()
    return category


class UserService:
    def __init__(self, session: Session, *, clock: Clock = utcnow) -> None:
        self.session = session
        self.clock = clock

    def create(self, data: UserIn) -> User:
        password_hash = hash_password(data.password)
        with transaction(self.session):
            if get_user_by_email(self.session, data.email):
                raise EmailAlreadyRegistered()
            try:
                user = create_user(
                    self.session,
                    name=data.name.strip(),
                    email=data.email,
                    password_hash=password_hash,
                    now=self.clock(),
                )
            except IntegrityError as exc:
                raise EmailAlreadyRegistered() from exc
        logger.info(f"user_created: id={user.id}")
        return user

    def get(self, user_id: uuid.UUID) -> User:
        with transaction(self.session):
            user = get_user_by_id(self.session, user_id)
            if user is None:
                raise UserNotFound()
        return user

    def delete(self, user_id: uuid.UUID) -> User:
        with transaction(self.session):
            user = delete_user(self.session, user_id)
            if user is None:
                raise UserNotFound()
        logger.info(f"user_deleted: id={user_id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        with transaction(self.session):
            user = get_user_by_email(self.session, email)
        if user is None or not verify_password(password, user.password_hash):
            raise WrongCredentials()
        return user


class TokenService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def login(self, email: str, password: str) -> tuple[str, str]:
        user = UserService(self.session).authenticate(email, password)
        return issue_tokens(user.id)

    def current_user_id(self, access_token: str) -> uuid.UUID:
        user_id = verify_access_token(access_token)
        with transaction(self.session):
            user = get_user_by_id(self.session, user_id)
        if user is None:
            raise InvalidToken()
        return user.id

    def refresh(self, refresh_token: str) -> str:
        user_id = verify_refresh_token(refresh_token)
        with transaction(self.session):
            user = get_user_by_id(self.session, user_id)
        if user is None:
            raise InvalidToken()
        return create_token(user.id, ACCESS)


class CategoryService:
    def __init__(
        self, session: Session, user_id: uuid.UUID, *, clock: Clock = utcnow
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.clock = clock

    def create(self, data: CategoryIn) -> Category:
        with transaction(self.session):
            category = create_category(
                self.session,
                user_id=self.user_id,
                name=data.name.strip(),
                now=self.clock(),
            )
        return category

    def get(self, category_id: uuid.UUID) -> Category:
        with transaction(self.session):
            category = require_category(self.session, self.user_id, category_id)
        return category

    def list(self, limit: int, cursor: Optional[str] = None) -> Page[Category]:
        after = _page_args(limit, cursor)
        with transaction(self.session):
            rows = list_categories(self.session, self.user_id, limit, after)
        return build_page(rows, limit)

    def rename(self, category_id: uuid.UUID, data: CategoryIn) -> Category:
        with transaction(self.session):
            category = update_category(
                self.session,
                category_id,
                self.user_id,
                name=data.name.strip(),
                now=self.clock(),
            )
            if category is None:
                raise CategoryNotFound()
        return category

    def delete(self, category_id: uuid.UUID) -> Category:
        with transaction(self.session):
            require_category(self.session, self.user_id, category_id)
            if category_in_use(self.session, category_id, self.user_id):
                raise CategoryInUse()
            category = delete_category(self.session, category_id, self.user_id)
        return category


class ExpenseService:
    def __init__(
        self, session: Session, user_id: uuid.UUID, *, clock: Clock = utcnow
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.clock = clock

    def create(self, data: ExpenseIn) -> Expense:
        with transaction(self.session):
            require_category(self.session, self.user_id, data.category_id)
            expense = create_expense(
                self.session,
                user_id=self.user_id,
                category_id=data.category_id,
                description=data.description,
                amount=data.amount,
                now=self.clock(),
            )
            adjusted = update_budget_amount(
                self.session,
                user_id=self.user_id,
                category_id=expense.category_id,
                delta=expense.amount,
                reference_date=expense.accrual_date,
            )
        logger.info(
            f"expense_created: id={expense.id} category={expense.category_id} "
            f"amount={expense.amount} budgets_adjusted={adjusted}"
        )
        return expense

    def get(self, expense_id: uuid.UUID) -> Expense:
        with transaction(self.session):
            expense = get_expense_by_id(self.session, expense_id, self.user_id)
            if expense is None:
                raise ExpenseNotFound()
        return expense

    def list(self, limit: int, cursor: Optional[str] = None) -> Page[Expense]:
        after = _page_args(limit, cursor)
        with transaction(self.session):
            rows = list_expenses(self.session, self.user_id, limit, after)
        return build_page(rows, limit)

    def list_by_category(
        self, category_id: uuid.UUID, limit: int, cursor: Optional[str] = None
    ) -> Page[Expense]:
        after = _page_args(limit, cursor)
        with transaction(self.session):
            require_category(self.session, self.user_id, category_id)
            rows = list_expenses(
                self.session, self.user_id, limit, after, category_id=category_id
            )
        return build_page(rows, limit)

    def total_spent(self, start: date, end: date) -> Decimal:
        if start > end:
            raise InvalidInput("Start date must be before end date")
        with transaction(self.session):
            total = get_total_spent(self.session, self.user_id, start, end)
        return total

    def update(self, expense_id: uuid.UUID, data: ExpenseUpdate) -> Expense:
        with transaction(self.session):
            expense = get_expense_by_id(
                self.session, expense_id, self.user_id, for_update=True
            )
            if expense is None:
                raise ExpenseNotFound()

            old_category_id = expense.category_id
            old_amount = expense.amount

            description = expense.description
            if data.provided("description"):
                description = data.description
            amount = expense.amount
            if data.provided("amount"):
                amount = data.amount
            category_id = expense.category_id
            if data.provided("category_id") and data.category_id != category_id:
                category_id = require_category(
                    self.session, self.user_id, data.category_id
                ).id

            update_expense(
                self.session,
                expense,
                description=description,
                amount=amount,
                category_id=category_id,
                now=self.clock(),
            )

            # Take the old contribution out before putting the new one in;
            # the two may land on different budgets.
            update_budget_amount(
                self.session,
                user_id=self.user_id,
                category_id=old_category_id,
                delta=-old_amount,
                reference_date=expense.accrual_date,
            )
            update_budget_amount(
                self.session,
                user_id=self.user_id,
                category_id=expense.category_id,
                delta=expense.amount,
                reference_date=expense.accrual_date,
            )
        logger.info(
            f"expense_updated: id={expense.id} category={old_category_id}->"
            f"{expense.category_id} amount={old_amount}->{expense.amount}"
        )
        return expense

    def delete(self, expense_id: uuid.UUID) -> Expense:
        with transaction(self.session):
            expense = delete_expense(self.session, expense_id, self.user_id)
            if expense is None:
                raise ExpenseNotFound()
            update_budget_amount(
                self.session,
                user_id=self.user_id,
                category_id=expense.category_id,
                delta=-expense.amount,
                reference_date=expense.accrual_date,
            )
        logger.info(f"expense_deleted: id={expense.id} amount={expense.amount}")
        return expense


class BudgetService:
    def __init__(
        self, session: Session, user_id: uuid.UUID, *, clock: Clock = utcnow
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.clock = clock

    def create(self, data: BudgetIn) -> Budget:
        with transaction(self.session):
            require_category(self.session, self.user_id, data.category_id)
            spent = get_total_spent_in_category(
                self.session,
                self.user_id,
                data.category_id,
                data.start_date,
                data.end_date,
            )
            budget = create_budget(
                self.session,
                user_id=self.user_id,
                category_id=data.category_id,
                goal=data.goal,
                amount=spent,
                start_date=data.start_date,
                end_date=data.end_date,
                now=self.clock(),
            )
        logger.info(
            f"budget_created: id={budget.id} category={budget.category_id} "
            f"window={budget.start_date}..{budget.end_date} amount={budget.amount}"
        )
        return budget

    def get(self, budget_id: uuid.UUID) -> Budget:
        with transaction(self.session):
            budget = get_budget_by_id(self.session, budget_id, self.user_id)
            if budget is None:
                raise BudgetNotFound()
        return budget

    def list(self, limit: int, cursor: Optional[str] = None) -> Page[Budget]:
        after = _page_args(limit, cursor)
        with transaction(self.session):
            rows = list_budgets(self.session, self.user_id, limit, after)
        return build_page(rows, limit)

    def delete(self, budget_id: uuid.UUID) -> Budget:
        with transaction(self.session):
            budget = delete_budget(self.session, budget_id, self.user_id)
            if budget is None:
                raise BudgetNotFound()
        return budget
