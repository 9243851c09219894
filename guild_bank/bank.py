"""
Bank Module

Wires the snapshot store, account ledger, loan engine, aggregation views and
mutation gate around a single LedgerState, and is the boundary where ledger
errors become structured rejections.

Mutations run as: take the gate, parse the amount, mutate, save the whole
snapshot, release the gate. Reads go straight to the in-memory state.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union
from pathlib import Path

from .accounts import AccountLedger
from .amounts import parse_amount
from .config import BankConfig, get_config
from .exceptions import (
    LedgerError, AmbiguousLoanTarget, InsufficientBalance, LoanNotFound, PersistenceFailure
)
from .gate import MutationGate
from .loans import LoanEngine
from .logging_config import get_logger, log_action
from .reporting import AggregationViews
from .storage import SnapshotStore, JSONFileSnapshotStore, LedgerState


logger = get_logger("guild_bank.bank")


@dataclass
class OperationResult:
    """Outcome of a Bank operation, successful or rejected"""
    ok: bool
    value: Any = None
    error_code: Optional[str] = None
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    persisted: bool = True  # False when a mutation applied in memory but the save failed

    @classmethod
    def success(cls, value: Any = None) -> 'OperationResult':
        return cls(ok=True, value=value)

    @classmethod
    def unsaved(cls, value: Any, error: PersistenceFailure) -> 'OperationResult':
        """Mutation applied in memory whose snapshot save failed"""
        return cls(ok=True, value=value, error_code=error.code, message=str(error), persisted=False)

    @classmethod
    def rejected(cls, error: LedgerError) -> 'OperationResult':
        return cls(
            ok=False,
            error_code=error.code,
            message=str(error),
            details=_error_details(error),
        )


def _error_details(error: LedgerError) -> Dict[str, Any]:
    if isinstance(error, InsufficientBalance):
        return {
            "account_name": error.account_name,
            "requested": error.requested,
            "balance": error.balance,
        }
    if isinstance(error, AmbiguousLoanTarget):
        return {
            "borrower_name": error.borrower_name,
            "lender_name": error.lender_name,
            "loan_ids": error.loan_ids,
            "candidates": error.candidates,
        }
    if isinstance(error, LoanNotFound):
        return {"loan_id": error.loan_id}
    return {}


def _parse_count(value: Any, default: int, maximum: int) -> int:
    """Count argument for read views; anything that does not floor into 1..maximum falls back to default"""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number < 1 or number > maximum:
        return default
    return int(number)


class Bank:
    """
    Guild bank with all components initialized over one shared state
    """

    def __init__(self, store: SnapshotStore, config: Optional[BankConfig] = None):
        self.config = config or get_config()
        self.store = store
        self.gate = MutationGate()
        self._attach(self.store.load())

    @classmethod
    def from_file(cls, path: Union[str, Path, None] = None,
                  config: Optional[BankConfig] = None) -> 'Bank':
        """Create a bank backed by a JSON snapshot file (config.data_file by default)"""
        config = config or get_config()
        return cls(JSONFileSnapshotStore(path or config.data_file), config)

    def _attach(self, state: LedgerState) -> None:
        self.state = state
        self.ledger = AccountLedger(state)
        self.loans = LoanEngine(state, self.config.loan_id_max_length)
        self.views = AggregationViews(state)

    def reload(self) -> OperationResult:
        """Replace the in-memory state with the persisted snapshot"""
        try:
            with self.gate.hold("reload"):
                self._attach(self.store.load())
        except LedgerError as e:
            return OperationResult.rejected(e)
        return OperationResult.success()

    # Mutations

    def _mutate(self, action: str, resource: str, actor_id: str,
                operation: Callable[[], Any]) -> OperationResult:
        try:
            with self.gate.hold(action):
                value = operation()
                persisted = self.store.save(self.state)
        except LedgerError as e:
            log_action(
                logger, "info", f"{action} rejected: {e}",
                actor_id=actor_id, action=action, resource=resource,
                extra={"error_code": e.code}
            )
            return OperationResult.rejected(e)

        if not persisted:
            failure = PersistenceFailure(
                f"{action} was applied but the bank data could not be saved."
            )
            log_action(
                logger, "error", f"{action} applied in memory but snapshot save failed",
                actor_id=actor_id, action=action, resource=resource,
                extra={"error_code": failure.code}
            )
            return OperationResult.unsaved(value, failure)

        log_action(logger, "info", f"{action} completed",
                   actor_id=actor_id, action=action, resource=resource)
        return OperationResult.success(value)

    def deposit(self, account_name: str, amount: Any, actor_id: str, note: str = "") -> OperationResult:
        """Deposit GP; value is a BalanceChange"""
        return self._mutate(
            "deposit", account_name, actor_id,
            lambda: self.ledger.deposit(account_name, parse_amount(amount), actor_id, note)
        )

    def withdraw(self, account_name: str, amount: Any, actor_id: str, note: str = "") -> OperationResult:
        """Withdraw GP; value is a BalanceChange, rejected with insufficient_balance on overdraw"""
        return self._mutate(
            "withdraw", account_name, actor_id,
            lambda: self.ledger.withdraw(account_name, parse_amount(amount), actor_id, note)
        )

    def create_loan(self, borrower_name: Optional[str], lender_name: Optional[str],
                    amount: Any, actor_id: str, note: str = "") -> OperationResult:
        """Create a loan; value is the new Loan"""
        return self._mutate(
            "loan", borrower_name or "", actor_id,
            lambda: self.loans.create_loan(borrower_name, lender_name, parse_amount(amount), actor_id, note)
        )

    def repay(self, borrower_name: str, amount: Any, target: str, actor_id: str) -> OperationResult:
        """Repay a loan chosen by loan id or lender name; value is a RepaymentResult"""
        return self._mutate(
            "repay", str(target or ""), actor_id,
            lambda: self.loans.repay(borrower_name, parse_amount(amount), target, actor_id)
        )

    def accrue(self, borrower_name: str, amount: Any, target: str, actor_id: str) -> OperationResult:
        """Accrue interest/fees on a loan chosen by loan id or lender name; value is an AccrualResult"""
        return self._mutate(
            "accrue", str(target or ""), actor_id,
            lambda: self.loans.accrue(borrower_name, parse_amount(amount), target, actor_id)
        )

    # Reads

    def balance(self, account_name: str) -> OperationResult:
        return OperationResult.success(self.ledger.get_balance(account_name))

    def history(self, account_name: str, count: Any = None) -> OperationResult:
        """Recent transactions; rejected with no_transactions for an account with none"""
        limit = _parse_count(count, self.config.history_default_count, self.config.history_max_count)
        try:
            return OperationResult.success(self.ledger.history(account_name, limit))
        except LedgerError as e:
            return OperationResult.rejected(e)

    def debts_of_borrower(self, borrower_name: str) -> OperationResult:
        return OperationResult.success(self.loans.list_debts_of_borrower(borrower_name))

    def loans_of_lender(self, lender_name: str) -> OperationResult:
        return OperationResult.success(self.loans.list_loans_of_lender(lender_name))

    def get_loan(self, loan_id: str) -> OperationResult:
        loan = self.loans.get_loan(loan_id)
        if loan is None:
            return OperationResult.rejected(LoanNotFound(str(loan_id)))
        return OperationResult.success(loan)

    def loan_history(self, loan_id: str) -> OperationResult:
        try:
            return OperationResult.success(self.loans.loan_history(loan_id))
        except LedgerError as e:
            return OperationResult.rejected(e)

    def leaderboard(self, count: Any = None) -> OperationResult:
        """Wealth and debt rankings; count defaults to and is capped at the configured maximum"""
        limit = self.config.leaderboard_default_count
        if count is not None and not isinstance(count, bool):
            try:
                number = float(count)
            except (TypeError, ValueError):
                number = None
            if number is not None and number == number and number > 0:
                limit = int(min(self.config.leaderboard_max_count, number))
        return OperationResult.success(self.views.leaderboard(limit))
