from typing import Optional


class LedgerError(Exception):
    message = "Ledger error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class NotFoundError(LedgerError):
    message = "Resource does not exist"


class UserNotFound(NotFoundError):
    message = "User does not exist"


class CategoryNotFound(NotFoundError):
    message = "Category does not exist"


class ExpenseNotFound(NotFoundError):
    message = "Expense does not exist"


class BudgetNotFound(NotFoundError):
    message = "Budget does not exist"


class InvalidCursor(LedgerError):
    message = "Invalid page cursor"


class InvalidInput(LedgerError, ValueError):
    message = "Invalid input"


class ConflictError(LedgerError):
    message = "Conflicting state"


class EmailAlreadyRegistered(ConflictError):
    message = "Email already registered"


class CategoryInUse(ConflictError):
    message = "Category is referenced by expenses or budgets"


class PersistenceError(LedgerError):
    message = "Failed to persist changes"


class AuthError(LedgerError):
    message = "Not authenticated"


class WrongCredentials(AuthError):
    message = "Invalid credentials"


class InvalidToken(AuthError):
    message = "Invalid token"
