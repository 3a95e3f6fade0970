"""User data session package."""

from expense_tracker.session.user_data import (
    AuthenticationRequiredError,
    UserDataSession,
    UserDataState,
)

__all__ = [
    "AuthenticationRequiredError",
    "UserDataSession",
    "UserDataState",
]
