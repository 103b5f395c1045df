import logging
import time
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal
from errors import (
    ConflictError,
    InvalidCursor,
    InvalidInput,
    InvalidToken,
    LedgerError,
    NotFoundError,
    PersistenceError,
    WrongCredentials,
)
from schemas import (
    AccessTokenOut,
    BudgetIn,
    BudgetOut,
    BudgetPage,
    CategoryIn,
    CategoryOut,
    CategoryPage,
    ExpenseIn,
    ExpenseOut,
    ExpensePage,
    ExpenseUpdate,
    LoginIn,
    RefreshIn,
    TokenPairOut,
    TotalSpentOut,
    UserIn,
    UserOut,
)
from services import (
    BudgetService,
    CategoryService,
    ExpenseService,
    TokenService,
    UserService,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Expense Tracker")
router = APIRouter(prefix="/api/v1")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> uuid.UUID:
    if not authorization:
        raise HTTPException(status_code=401, detail="No token provided")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        return TokenService(db).current_user_id(token.strip())
    except InvalidToken as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def page_limit(limit: Optional[int] = Query(default=None)) -> int:
    if limit is None:
        return settings.page_limit_default
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be at least 1")
    return min(limit, settings.page_limit_max)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"{request.method} {response.status_code} {request.url.path} {elapsed_ms:.1f}ms"
    )
    return response


@app.exception_handler(PersistenceError)
def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError):
    logger.error(f"unhandled_ledger_error: {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@router.get("")
def health():
    return {"status": "ok"}


# users and tokens


@router.post("/users", response_model=UserOut, status_code=201)
def create_user(data: UserIn, db: Session = Depends(get_db)):
    try:
        return UserService(db).create(data)
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/users/me", response_model=UserOut)
def get_me(
    user_id: uuid.UUID = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    try:
        return UserService(db).get(user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/users/me", response_model=UserOut)
def delete_me(
    user_id: uuid.UUID = Depends(get_current_user_id), db: Session = Depends(get_db)
):
    try:
        return UserService(db).delete(user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/tokens", response_model=TokenPairOut)
def login(data: LoginIn, db: Session = Depends(get_db)):
    try:
        access_token, refresh_token = TokenService(db).login(data.email, data.password)
    except WrongCredentials as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return TokenPairOut(access_token=access_token, refresh_token=refresh_token)


@router.post("/tokens/refresh", response_model=AccessTokenOut)
def refresh(data: RefreshIn, db: Session = Depends(get_db)):
    try:
        access_token = TokenService(db).refresh(data.refresh_token)
    except InvalidToken as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return AccessTokenOut(access_token=access_token)


# categories


@router.get("/categories", response_model=CategoryPage, response_model_exclude_none=True)
def list_categories(
    cursor: Optional[str] = None,
    limit: int = Depends(page_limit),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        page = CategoryService(db, user_id).list(limit, cursor)
    except (InvalidCursor, InvalidInput) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return CategoryPage(
        categories=[CategoryOut.model_validate(c) for c in page.items],
        next=page.next_cursor,
    )


@router.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return CategoryService(db, user_id).create(data)


@router.get("/categories/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).get(category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.patch("/categories/{category_id}", response_model=CategoryOut)
def rename_category(
    category_id: uuid.UUID,
    data: CategoryIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).rename(category_id, data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/categories/{category_id}", response_model=CategoryOut)
def delete_category(
    category_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return CategoryService(db, user_id).delete(category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get(
    "/categories/{category_id}/expenses",
    response_model=ExpensePage,
    response_model_exclude_none=True,
)
def list_category_expenses(
    category_id: uuid.UUID,
    cursor: Optional[str] = None,
    limit: int = Depends(page_limit),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        page = ExpenseService(db, user_id).list_by_category(category_id, limit, cursor)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidCursor, InvalidInput) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ExpensePage(
        expenses=[ExpenseOut.model_validate(e) for e in page.items],
        next=page.next_cursor,
    )


# expenses


@router.get("/expenses", response_model=ExpensePage, response_model_exclude_none=True)
def list_expenses(
    cursor: Optional[str] = None,
    limit: int = Depends(page_limit),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        page = ExpenseService(db, user_id).list(limit, cursor)
    except (InvalidCursor, InvalidInput) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ExpensePage(
        expenses=[ExpenseOut.model_validate(e) for e in page.items],
        next=page.next_cursor,
    )


@router.post("/expenses", response_model=ExpenseOut, status_code=201)
def create_expense(
    data: ExpenseIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, user_id).create(data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/expenses/total", response_model=TotalSpentOut)
def total_spent(
    start: date,
    end: date,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        total = ExpenseService(db, user_id).total_spent(start, end)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TotalSpentOut(start=start, end=end, total=total)


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, user_id).get(expense_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.patch("/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: uuid.UUID,
    data: ExpenseUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, user_id).update(expense_id, data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/expenses/{expense_id}", response_model=ExpenseOut)
def delete_expense(
    expense_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return ExpenseService(db, user_id).delete(expense_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# budgets


@router.get("/budgets", response_model=BudgetPage, response_model_exclude_none=True)
def list_budgets(
    cursor: Optional[str] = None,
    limit: int = Depends(page_limit),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        page = BudgetService(db, user_id).list(limit, cursor)
    except (InvalidCursor, InvalidInput) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return BudgetPage(
        budgets=[BudgetOut.model_validate(b) for b in page.items],
        next=page.next_cursor,
    )


@router.post("/budgets", response_model=BudgetOut, status_code=201)
def create_budget(
    data: BudgetIn,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return BudgetService(db, user_id).create(data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/budgets/{budget_id}", response_model=BudgetOut)
def get_budget(
    budget_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return BudgetService(db, user_id).get(budget_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/budgets/{budget_id}", response_model=BudgetOut)
def delete_budget(
    budget_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return BudgetService(db, user_id).delete(budget_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
