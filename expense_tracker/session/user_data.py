"""
User Data Session

Holds one signed-in user's paycheck, expenses, budgets and API keys and
keeps them in step with the document store. A UI creates one session
per active user session and reads `session.state` after each call.

State transitions:
- no user        -> collections empty, not loading
- user changes   -> full reload of all collections
- any operation  -> `loading` while in flight, `error` reset at start

Update strategy differs by operation:
- saving an expense reloads everything (consistent, more reads)
- saving a budget reloads budgets only, saving an API key its keys only
- saving a paycheck sets state from the input, no re-read
- deletes filter the local lists, no re-read

A load replaces state only once every collection has been read. Stored
documents that do not fit their model are skipped and logged, so one
odd document never blocks the rest of the user's data.

Failures of mutating operations are recorded in `state.error` AND
re-raised, so a caller can use either path. Loads only record.

Nothing here is serialized: a save issued while a load is in flight is
allowed, and whichever finishes last wins. A load started for a user
that has since changed may still land.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from expense_tracker.config import get_settings
from expense_tracker.logs import get_logger
from expense_tracker.models import (
    RESERVED_FIELDS,
    ApiKeyInfo,
    AuthenticatedUser,
    Budget,
    Collection,
    Expense,
    PaycheckData,
    RecordT,
    coerce_amount,
    coerce_date,
    document_data,
    parse_records,
)
from expense_tracker.services import (
    ApiKeyService,
    DocumentStoreService,
    StorageError,
)
from expense_tracker.services.api_keys import DEFAULT_LABEL, validate_api_key_format
from expense_tracker.services.expense_calculator import SpendingSummary, summarize_spending
from expense_tracker.services.tax_calculator import TaxBreakdown, calculate_paycheck_taxes


RecordInput = Union[Mapping[str, Any], BaseModel]


class AuthenticationRequiredError(Exception):
    """An operation that needs a signed-in user was called without one."""
    pass


class UserDataState(BaseModel):
    """Snapshot of one user's data as the UI sees it."""

    paycheck_data: PaycheckData = Field(default_factory=PaycheckData)
    expenses: list[Expense] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    api_keys: list[ApiKeyInfo] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


class UserDataSession:
    """
    Per-session state container bound to the current user.

    Args:
        store: Document store service used for every read and write
        expense_load_limit: How many of the most recent expenses to load.
                            Defaults to the `expense_load_limit` setting.
        api_keys: API key service. Built on `store` when omitted.
    """

    def __init__(
        self,
        store: DocumentStoreService,
        expense_load_limit: Optional[int] = None,
        api_keys: Optional[ApiKeyService] = None,
    ):
        if expense_load_limit is None:
            expense_load_limit = get_settings().app.expense_load_limit
        if expense_load_limit < 1:
            raise ValueError(f"expense_load_limit must be positive, got {expense_load_limit}")

        self._store = store
        self._api_keys = api_keys or ApiKeyService(store)
        self._user: Optional[AuthenticatedUser] = None
        self._expense_load_limit = expense_load_limit
        self._logger = get_logger(__name__)
        self.state = UserDataState()

    @property
    def user(self) -> Optional[AuthenticatedUser]:
        return self._user

    @property
    def user_id(self) -> Optional[str]:
        return self._user.uid if self._user else None

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def set_user(self, user: Optional[AuthenticatedUser]) -> None:
        """
        React to the identity provider reporting a (new) user.

        A different user triggers a full reload. No user clears the
        collections immediately, without touching the store.
        """
        previous_id = self.user_id
        self._user = user

        if self.user_id == previous_id:
            return

        if self.user_id is None:
            self._clear()
            return

        await self.load_user_data()

    def _clear(self) -> None:
        self.state.paycheck_data = PaycheckData()
        self.state.expenses = []
        self.state.budgets = []
        self.state.api_keys = []
        self.state.error = None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_user(self) -> str:
        if not self.user_id:
            error = AuthenticationRequiredError("User not authenticated")
            self.state.error = str(error)
            raise error
        return self.user_id

    def _begin(self) -> None:
        self.state.loading = True
        self.state.error = None

    def _record_failure(self, event: str, error: Exception, **context: Any) -> None:
        self._logger.error(event, user_id=self.user_id, error=str(error), **context)
        self.state.error = str(error)

    def _parse(
        self,
        model: type[RecordT],
        collection: Collection,
        documents: Iterable[Mapping[str, Any]],
    ) -> list[RecordT]:
        records, rejected = parse_records(model, documents)
        for document_id, error in rejected:
            self._logger.warning(
                "document_skipped",
                user_id=self.user_id,
                collection=collection.value,
                document_id=document_id,
                error=error,
            )
        return records

    async def _fetch_budgets(self, user_id: str) -> list[Budget]:
        budgets = await self._store.get_all_for_owner(
            Collection.BUDGETS,
            user_id,
            order_field="createdAt",
            direction="desc",
        )
        return self._parse(Budget, Collection.BUDGETS, budgets)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load_user_data(self) -> None:
        """
        Replace local state with the user's paycheck, expenses, budgets
        and API keys.

        Failures are logged and recorded in `state.error`, not raised;
        state is left as it was.
        """
        user_id = self.user_id
        if not user_id:
            return

        self._begin()
        try:
            paychecks = await self._store.get_all_for_owner(Collection.PAYCHECKS, user_id)
            expenses = await self._store.get_all_for_owner(
                Collection.EXPENSES,
                user_id,
                order_field="date",
                direction="desc",
                limit=self._expense_load_limit,
            )
            budgets = await self._fetch_budgets(user_id)
            api_keys = await self._api_keys.list_api_keys(user_id)
        except StorageError as e:
            self._record_failure("user_data_load_failed", e)
            return
        finally:
            self.state.loading = False

        paycheck = self._parse(PaycheckData, Collection.PAYCHECKS, paychecks)
        self.state.paycheck_data = paycheck[0] if paycheck else PaycheckData()
        self.state.expenses = self._parse(Expense, Collection.EXPENSES, expenses)
        self.state.budgets = budgets
        self.state.api_keys = api_keys

    async def refresh_data(self) -> None:
        """Reload all collections."""
        await self.load_user_data()

    def clear_error(self) -> None:
        self.state.error = None

    # -------------------------------------------------------------------------
    # Paycheck
    # -------------------------------------------------------------------------

    async def save_paycheck(self, data: RecordInput) -> None:
        """
        Save the user's paycheck, overwriting the existing one if any.

        Mappings use store field names (`grossSalary`, `filingStatus`, ...).
        The input is validated before anything is written.
        """
        user_id = self._require_user()
        self._begin()
        try:
            processed = {
                key: value
                for key, value in document_data(data).items()
                if key not in RESERVED_FIELDS
            }
            processed["grossSalary"] = coerce_amount(processed.get("grossSalary"))
            paycheck = PaycheckData.model_validate(processed)

            existing = await self._store.get_all_for_owner(Collection.PAYCHECKS, user_id)
            existing_id = existing[0]["id"] if existing else None

            await self._store.save_or_update(
                Collection.PAYCHECKS,
                user_id,
                paycheck.to_document(),
                existing_id,
            )
            self.state.paycheck_data = paycheck
        except Exception as e:
            self._record_failure("paycheck_save_failed", e)
            raise
        finally:
            self.state.loading = False

    def calculate_taxes(self) -> TaxBreakdown:
        """Tax breakdown for the loaded paycheck."""
        return calculate_paycheck_taxes(self.state.paycheck_data)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def save_expense(self, data: RecordInput, existing_id: Optional[str] = None) -> None:
        """
        Create or update an expense, then reload all user data.

        Raises:
            AuthenticationRequiredError: If no user is signed in
            ValueError: If the expense date cannot be read
            StoreOperationFailed: If the write fails
        """
        user_id = self._require_user()
        self._begin()
        try:
            processed = document_data(data)
            processed["amount"] = coerce_amount(processed.get("amount"))
            processed["date"] = coerce_date(processed.get("date"))

            await self._store.save_or_update(
                Collection.EXPENSES,
                user_id,
                processed,
                existing_id,
            )
            await self.load_user_data()
        except Exception as e:
            self._record_failure("expense_save_failed", e, expense_id=existing_id)
            raise
        finally:
            self.state.loading = False

    async def delete_expense(self, expense_id: str) -> None:
        """Delete an expense and drop it from local state."""
        self._begin()
        try:
            await self._store.delete(Collection.EXPENSES, expense_id)
            self.state.expenses = [
                expense for expense in self.state.expenses if expense.id != expense_id
            ]
        except Exception as e:
            self._record_failure("expense_delete_failed", e, expense_id=expense_id)
            raise
        finally:
            self.state.loading = False

    async def batch_delete_expenses(self, expense_ids: Iterable[str]) -> None:
        """
        Delete several expenses at once.

        Local state only changes when the whole batch succeeds.
        """
        removed = set(expense_ids)
        self._begin()
        try:
            await self._store.batch_delete(Collection.EXPENSES, list(removed))
            self.state.expenses = [
                expense for expense in self.state.expenses if expense.id not in removed
            ]
        except Exception as e:
            self._record_failure("expense_batch_delete_failed", e, expense_ids=sorted(removed))
            raise
        finally:
            self.state.loading = False

    async def get_expenses_by_date_range(self, start: datetime, end: datetime) -> list[Expense]:
        """
        Query the store for expenses dated within [start, end], newest first.

        Local state is left untouched.
        """
        user_id = self._require_user()
        self._begin()
        try:
            documents = await self._store.get_by_date_range(
                Collection.EXPENSES,
                user_id,
                start,
                end,
                date_field="date",
            )
            return self._parse(Expense, Collection.EXPENSES, documents)
        except Exception as e:
            self._record_failure("expense_range_query_failed", e)
            raise
        finally:
            self.state.loading = False

    def get_expenses_by_category(self, category: Union[str, Enum]) -> list[Expense]:
        """Loaded expenses in a category."""
        if isinstance(category, Enum):
            category = category.value
        return [expense for expense in self.state.expenses if expense.category == category]

    def get_expenses_by_type(self, expense_type: Union[str, Enum]) -> list[Expense]:
        """Loaded expenses of a type (fixed, recurring, one_time)."""
        if isinstance(expense_type, Enum):
            expense_type = expense_type.value
        return [expense for expense in self.state.expenses if expense.type == expense_type]

    def get_spending_summary(self) -> SpendingSummary:
        """
        Totals and savings for the loaded expenses, measured against the
        monthly take-home pay of the loaded paycheck.
        """
        return summarize_spending(self.state.expenses, self.calculate_taxes().monthly_net)

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def save_budget(self, data: RecordInput, existing_id: Optional[str] = None) -> None:
        """Create or update a budget, then reload budgets only."""
        user_id = self._require_user()
        self._begin()
        try:
            await self._store.save_or_update(
                Collection.BUDGETS,
                user_id,
                data,
                existing_id,
            )
            self.state.budgets = await self._fetch_budgets(user_id)
        except Exception as e:
            self._record_failure("budget_save_failed", e, budget_id=existing_id)
            raise
        finally:
            self.state.loading = False

    async def delete_budget(self, budget_id: str) -> None:
        """Delete a budget and drop it from local state."""
        self._begin()
        try:
            await self._store.delete(Collection.BUDGETS, budget_id)
            self.state.budgets = [
                budget for budget in self.state.budgets if budget.id != budget_id
            ]
        except Exception as e:
            self._record_failure("budget_delete_failed", e, budget_id=budget_id)
            raise
        finally:
            self.state.loading = False

    # -------------------------------------------------------------------------
    # API keys
    # -------------------------------------------------------------------------

    async def save_api_key(self, api_key: str, label: str = DEFAULT_LABEL) -> None:
        """
        Check a key with the provider, store it, then reload the user's keys.

        Raises:
            AuthenticationRequiredError: If no user is signed in
            ValueError: If the provider does not accept the key
            StoreOperationFailed: If the write fails
        """
        user_id = self._require_user()
        self._begin()
        try:
            if not await self._api_keys.test_api_key(api_key):
                raise ValueError(
                    "API key appears to be invalid. Please check your key and try again."
                )
            await self._api_keys.save_api_key(user_id, api_key, label)
            self.state.api_keys = await self._api_keys.list_api_keys(user_id)
        except Exception as e:
            self._record_failure("api_key_save_failed", e, label=label)
            raise
        finally:
            self.state.loading = False

    async def get_api_key(self, label: str = DEFAULT_LABEL) -> Optional[str]:
        """The user's active key with `label`, revealed, or None."""
        user_id = self._require_user()
        try:
            return await self._api_keys.get_api_key(user_id, label)
        except Exception as e:
            self._record_failure("api_key_read_failed", e, label=label)
            raise

    async def delete_api_key(self, key_id: str) -> None:
        """Delete a key and drop it from local state."""
        self._begin()
        try:
            await self._api_keys.delete_api_key(key_id)
            self.state.api_keys = [key for key in self.state.api_keys if key.id != key_id]
        except Exception as e:
            self._record_failure("api_key_delete_failed", e, key_id=key_id)
            raise
        finally:
            self.state.loading = False

    async def deactivate_api_key(self, key_id: str) -> None:
        """Deactivate a key and mark it inactive in local state."""
        self._begin()
        try:
            await self._api_keys.deactivate_api_key(key_id)
            self.state.api_keys = [
                key.model_copy(update={"is_active": False}) if key.id == key_id else key
                for key in self.state.api_keys
            ]
        except Exception as e:
            self._record_failure("api_key_deactivate_failed", e, key_id=key_id)
            raise
        finally:
            self.state.loading = False

    def has_api_key(self) -> bool:
        return any(key.is_active for key in self.state.api_keys)

    def get_default_api_key_info(self) -> Optional[ApiKeyInfo]:
        return next(
            (
                key
                for key in self.state.api_keys
                if key.label == DEFAULT_LABEL and key.is_active
            ),
            None,
        )

    async def test_api_key(self, api_key: str) -> bool:
        """
        Check a key without saving it.

        A rejected key is recorded in `state.error` and reported as False.
        """
        self._begin()
        try:
            if not validate_api_key_format(api_key):
                raise ValueError("Invalid API key format")
            if not await self._api_keys.test_api_key(api_key):
                raise ValueError("API key is not valid")
            return True
        except ValueError as e:
            self._record_failure("api_key_rejected", e)
            return False
        finally:
            self.state.loading = False
