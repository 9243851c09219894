"""
Account Ledger Module

Maintains GP balances keyed by account name and the append-only transaction
log of each account. Accounts are created implicitly the first time they are
deposited to or withdrawn from and are never deleted.
"""

from dataclasses import dataclass
from typing import Dict, List, Any
from enum import Enum

from .amounts import stored_balance, utc_timestamp
from .exceptions import InsufficientBalance, NoTransactions, PersistenceFailure
from .storage import LedgerState


class TransactionType(Enum):
    """Types of bank transactions"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


@dataclass(frozen=True)
class Transaction:
    """Immutable entry in an account's transaction log"""
    timestamp: str
    type: TransactionType
    amount: int
    actor_id: str
    note: str = ""

    @property
    def signed_amount(self) -> int:
        """Amount with the sign it had on the balance"""
        return self.amount if self.type == TransactionType.DEPOSIT else -self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "type": self.type.value,
            "amount": self.amount,
            "actorId": self.actor_id,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        if not isinstance(data, dict):
            raise PersistenceFailure("Stored transaction is not a JSON object.")
        try:
            transaction_type = TransactionType(data.get("type"))
        except ValueError as e:
            raise PersistenceFailure(
                f"Stored transaction has unknown type {data.get('type')!r}."
            ) from e
        return cls(
            timestamp=data.get("timestamp", ""),
            type=transaction_type,
            amount=data.get("amount", 0),
            actor_id=data.get("actorId", ""),
            note=data.get("note") or "",
        )


@dataclass(frozen=True)
class BalanceChange:
    """Outcome of a deposit or withdrawal"""
    account_name: str
    type: TransactionType
    amount: int
    old_balance: int
    new_balance: int


class AccountLedger:
    """
    Balance map plus per-account transaction logs over a shared LedgerState.

    Amounts reaching this class are already parsed positive integers.
    """

    def __init__(self, state: LedgerState):
        self.state = state

    def get_balance(self, account_name: str) -> int:
        """Current balance; 0 for an unknown account or an unusable stored value"""
        return stored_balance(self.state.balances.get(account_name))

    def _set_balance(self, account_name: str, amount: int) -> None:
        self.state.balances[account_name] = amount

    def _record_transaction(
        self,
        account_name: str,
        transaction_type: TransactionType,
        amount: int,
        actor_id: str,
        note: str
    ) -> Transaction:
        transaction = Transaction(
            timestamp=utc_timestamp(),
            type=transaction_type,
            amount=amount,
            actor_id=actor_id,
            note=note or "",
        )
        self.state.transactions.setdefault(account_name, []).append(transaction.to_dict())
        return transaction

    def deposit(self, account_name: str, amount: int, actor_id: str, note: str = "") -> BalanceChange:
        """
        Add GP to an account

        Args:
            account_name: Resolved account name
            amount: Positive integer amount
            actor_id: Opaque identifier of whoever made the deposit
            note: Free-text note stored with the transaction

        Returns:
            BalanceChange with the old and new balance
        """
        old_balance = self.get_balance(account_name)
        new_balance = old_balance + amount

        self._set_balance(account_name, new_balance)
        self._record_transaction(account_name, TransactionType.DEPOSIT, amount, actor_id, note)

        return BalanceChange(account_name, TransactionType.DEPOSIT, amount, old_balance, new_balance)

    def withdraw(self, account_name: str, amount: int, actor_id: str, note: str = "") -> BalanceChange:
        """
        Remove GP from an account

        Raises:
            InsufficientBalance: if amount exceeds the current balance; nothing
                is changed or recorded in that case
        """
        old_balance = self.get_balance(account_name)
        if amount > old_balance:
            raise InsufficientBalance(account_name, amount, old_balance)

        new_balance = old_balance - amount

        self._set_balance(account_name, new_balance)
        self._record_transaction(account_name, TransactionType.WITHDRAW, amount, actor_id, note)

        return BalanceChange(account_name, TransactionType.WITHDRAW, amount, old_balance, new_balance)

    def transaction_count(self, account_name: str) -> int:
        return len(self.state.transactions.get(account_name) or [])

    def history(self, account_name: str, limit: int) -> List[Transaction]:
        """
        Most recent transactions of an account, oldest first within the window

        Raises:
            NoTransactions: if the account has never had a transaction
        """
        entries = self.state.transactions.get(account_name) or []
        if not entries:
            raise NoTransactions(account_name)

        if limit <= 0:
            return []
        return [Transaction.from_dict(entry) for entry in entries[-limit:]]
