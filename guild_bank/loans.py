"""
Loan Module

Handles loan creation, repayment, accrual of interest/fees, and the loan
lifecycle. Loans live beside account balances and are never mirrored in them:
a loan is only a debt record between a borrower name and a lender name.

Name matching throughout this module is case-insensitive and ignores
surrounding whitespace. It is a plain string comparison, not an identity
lookup.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Iterable
from enum import Enum
import secrets
import time

from .amounts import stored_balance, utc_timestamp
from .exceptions import (
    InvalidName, LoanNotFound, LoanAlreadyResolved, BorrowerMismatch,
    NoMatchingLoan, AmbiguousLoanTarget, PersistenceFailure
)
from .storage import LedgerState


UNKNOWN_NAME = "Unknown"
DEFAULT_LOAN_ID_MAX_LENGTH = 64

_BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


class LoanStatus(Enum):
    """Loan lifecycle states"""
    OPEN = "open"
    RESOLVED = "resolved"


class LoanTransactionType(Enum):
    """Types of entries in a loan's transaction log"""
    LOAN = "loan"          # Loan created
    REPAY = "repay"        # Repayment, logged with the requested amount
    ACCRUE = "accrue"      # Interest or fees added
    RESOLVE = "resolve"    # Balance reached zero, amount is always 0


@dataclass(frozen=True)
class Loan:
    """Read-only view of a loan record"""
    id: str
    borrower_name: str
    lender_name: str
    balance: int
    status: LoanStatus
    timestamp: str
    note: str = ""

    @property
    def is_resolved(self) -> bool:
        return self.status == LoanStatus.RESOLVED

    @classmethod
    def from_dict(cls, loan_id: str, data: Dict[str, Any]) -> 'Loan':
        status = data.get("status")
        return cls(
            id=loan_id,
            borrower_name=data.get("borrowerName") or UNKNOWN_NAME,
            lender_name=data.get("lenderName") or UNKNOWN_NAME,
            balance=stored_balance(data.get("balance")),
            status=LoanStatus.RESOLVED if status == LoanStatus.RESOLVED.value else LoanStatus.OPEN,
            timestamp=data.get("timestamp", ""),
            note=data.get("note") or "",
        )


@dataclass(frozen=True)
class LoanTransaction:
    """Immutable entry in a loan's transaction log"""
    timestamp: str
    type: LoanTransactionType
    amount: int
    actor_id: str
    note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "type": self.type.value,
            "amount": self.amount,
            "actorId": self.actor_id,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanTransaction':
        if not isinstance(data, dict):
            raise PersistenceFailure("Stored loan transaction is not a JSON object.")
        try:
            transaction_type = LoanTransactionType(data.get("type"))
        except ValueError as e:
            raise PersistenceFailure(
                f"Stored loan transaction has unknown type {data.get('type')!r}."
            ) from e
        return cls(
            timestamp=data.get("timestamp", ""),
            type=transaction_type,
            amount=data.get("amount", 0),
            actor_id=data.get("actorId", ""),
            note=data.get("note") or "",
        )


@dataclass(frozen=True)
class RepaymentResult:
    loan_id: str
    lender_name: str
    amount: int
    old_balance: int
    new_balance: int
    resolved: bool
    note: str = ""
    explicit_target: bool = False  # Target was a loan id rather than a lender name


@dataclass(frozen=True)
class AccrualResult:
    loan_id: str
    lender_name: str
    amount: int
    old_balance: int
    new_balance: int
    note: str = ""
    explicit_target: bool = False


@dataclass(frozen=True)
class DebtEntry:
    """Open loan seen from the borrower's side"""
    loan_id: str
    lender_name: str
    balance: int
    note: str = ""


@dataclass(frozen=True)
class LenderLoanEntry:
    """Open loan seen from the lender's side"""
    loan_id: str
    borrower_name: str
    balance: int
    note: str = ""


def names_match(a: Optional[str], b: Optional[str]) -> bool:
    """Case-insensitive, whitespace-trimmed name equality"""
    return str(a or "").strip().lower() == str(b or "").strip().lower()


def normalize_loan_id(loan_id: Any, max_length: int = DEFAULT_LOAN_ID_MAX_LENGTH) -> Optional[str]:
    """Trim and truncate a loan id; None if nothing is left"""
    if loan_id is None:
        return None
    text = str(loan_id).strip()
    if not text:
        return None
    return text[:max_length]


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def total_balance(entries: Iterable[Any]) -> int:
    """Sum of the balances of debt or lender listing entries"""
    return sum(entry.balance for entry in entries)


class LoanEngine:
    """
    Manages loan records and their transaction logs over a shared LedgerState.

    Amounts reaching this class are already parsed positive integers.
    """

    def __init__(self, state: LedgerState, loan_id_max_length: int = DEFAULT_LOAN_ID_MAX_LENGTH):
        self.state = state
        self.loan_id_max_length = loan_id_max_length

    # Loan id handling

    def normalize_loan_id(self, loan_id: Any) -> Optional[str]:
        return normalize_loan_id(loan_id, self.loan_id_max_length)

    def is_loan_id(self, value: Any) -> bool:
        """Check whether a string names a loan known to either the loan map or the loan logs"""
        loan_id = self.normalize_loan_id(value)
        if not loan_id:
            return False
        return loan_id in self.state.loans or loan_id in self.state.loan_transactions

    def generate_loan_id(self) -> str:
        """
        Generate a fresh opaque loan id.

        Ids are time-based with a random suffix and are regenerated until they
        collide with nothing already stored.
        """
        while True:
            millis = int(time.time() * 1000)
            suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(6))
            loan_id = self.normalize_loan_id(f"loan_{_to_base36(millis)}_{suffix}") or f"loan_{millis}"
            if not self.is_loan_id(loan_id):
                return loan_id

    # Records

    def _require_loan_record(self, loan_id: str) -> Dict[str, Any]:
        record = self.state.loans.get(loan_id)
        if not record:
            raise LoanNotFound(loan_id)
        return record

    def _record_loan_transaction(
        self,
        loan_id: str,
        transaction_type: LoanTransactionType,
        amount: int,
        actor_id: str,
        note: str = ""
    ) -> LoanTransaction:
        transaction = LoanTransaction(
            timestamp=utc_timestamp(),
            type=transaction_type,
            amount=amount,
            actor_id=actor_id,
            note=note or "",
        )
        self.state.loan_transactions.setdefault(loan_id, []).append(transaction.to_dict())
        return transaction

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get a loan by id (normalized), or None"""
        normalized = self.normalize_loan_id(loan_id)
        if not normalized:
            return None
        record = self.state.loans.get(normalized)
        if not record:
            return None
        return Loan.from_dict(normalized, record)

    def loan_history(self, loan_id: str) -> List[LoanTransaction]:
        """Full transaction log of a loan in append order"""
        normalized = self.normalize_loan_id(loan_id)
        if not normalized or not self.is_loan_id(normalized):
            raise LoanNotFound(str(loan_id))
        entries = self.state.loan_transactions.get(normalized) or []
        return [LoanTransaction.from_dict(entry) for entry in entries]

    def _open_loans(self) -> Iterable[Loan]:
        for loan_id, record in self.state.loans.items():
            if not record or record.get("status") == LoanStatus.RESOLVED.value:
                continue
            yield Loan.from_dict(loan_id, record)

    def find_open_loans(self, borrower_name: str, lender_name: str) -> List[Loan]:
        """Open loans whose borrower and lender both match the given names"""
        return [
            loan for loan in self._open_loans()
            if names_match(loan.borrower_name, borrower_name)
            and names_match(loan.lender_name, lender_name)
        ]

    # Operations

    def create_loan(
        self,
        borrower_name: Optional[str],
        lender_name: Optional[str],
        amount: int,
        actor_id: str,
        note: str = ""
    ) -> Loan:
        """
        Create a new open loan

        Args:
            borrower_name: Borrower name; "Unknown" when blank
            lender_name: Lender name; must not be blank
            amount: Initial debt as a positive integer
            actor_id: Opaque identifier of whoever recorded the loan
            note: Free-text note

        Returns:
            The created Loan
        """
        lender = str(lender_name or "").strip()
        if not lender:
            raise InvalidName("Lender cannot be empty.")
        borrower = str(borrower_name or "").strip() or UNKNOWN_NAME
        note = note or ""

        loan_id = self.generate_loan_id()
        self.state.loans[loan_id] = {
            "borrowerName": borrower,
            "lenderName": lender,
            "balance": amount,
            "status": LoanStatus.OPEN.value,
            "timestamp": utc_timestamp(),
            "note": note,
        }
        self._record_loan_transaction(
            loan_id, LoanTransactionType.LOAN, amount, actor_id, note or "Loan created"
        )

        return Loan.from_dict(loan_id, self.state.loans[loan_id])

    def resolve_target(self, borrower_name: str, target: Any) -> str:
        """
        Turn a repay/accrue target into a loan id

        A target naming a known loan id is used as-is, whatever the loan's
        status. Anything else is a lender name matched against the borrower's
        open loans.

        Raises:
            InvalidName: blank lender name
            NoMatchingLoan: no open loan with that lender
            AmbiguousLoanTarget: more than one open loan with that lender
        """
        if self.is_loan_id(target):
            return self.normalize_loan_id(target)

        lender_name = str(target or "").strip()
        if not lender_name:
            raise InvalidName("Lender cannot be empty.")

        matches = self.find_open_loans(borrower_name, lender_name)
        if not matches:
            raise NoMatchingLoan(borrower_name, lender_name)
        if len(matches) > 1:
            raise AmbiguousLoanTarget(
                borrower_name,
                lender_name,
                [{"loan_id": loan.id, "note": loan.note} for loan in matches],
            )
        return matches[0].id

    def _validated_loan(self, borrower_name: str, target: Any):
        loan_id = self.resolve_target(borrower_name, target)
        record = self._require_loan_record(loan_id)
        if record.get("status") == LoanStatus.RESOLVED.value:
            raise LoanAlreadyResolved(loan_id)
        if not names_match(record.get("borrowerName"), borrower_name):
            raise BorrowerMismatch(loan_id, borrower_name)
        return loan_id, record

    def repay(self, borrower_name: str, amount: int, target: Any, actor_id: str) -> RepaymentResult:
        """
        Repay part or all of a loan

        The new balance is clamped at zero; the logged repay amount is the
        requested one. Reaching zero resolves the loan and logs a resolve entry.
        """
        explicit_target = self.is_loan_id(target)
        loan_id, record = self._validated_loan(borrower_name, target)

        old_balance = stored_balance(record.get("balance"))
        new_balance = max(0, old_balance - amount)
        record["balance"] = new_balance
        self._record_loan_transaction(loan_id, LoanTransactionType.REPAY, amount, actor_id)

        resolved = new_balance == 0
        if resolved:
            record["status"] = LoanStatus.RESOLVED.value
            self._record_loan_transaction(
                loan_id, LoanTransactionType.RESOLVE, 0, actor_id, "Loan resolved"
            )

        return RepaymentResult(
            loan_id=loan_id,
            lender_name=record.get("lenderName") or UNKNOWN_NAME,
            amount=amount,
            old_balance=old_balance,
            new_balance=new_balance,
            resolved=resolved,
            note=record.get("note") or "",
            explicit_target=explicit_target,
        )

    def accrue(self, borrower_name: str, amount: int, target: Any, actor_id: str) -> AccrualResult:
        """Add interest or fees to an open loan; status never changes"""
        explicit_target = self.is_loan_id(target)
        loan_id, record = self._validated_loan(borrower_name, target)

        old_balance = stored_balance(record.get("balance"))
        new_balance = old_balance + amount
        record["balance"] = new_balance
        self._record_loan_transaction(loan_id, LoanTransactionType.ACCRUE, amount, actor_id)

        return AccrualResult(
            loan_id=loan_id,
            lender_name=record.get("lenderName") or UNKNOWN_NAME,
            amount=amount,
            old_balance=old_balance,
            new_balance=new_balance,
            note=record.get("note") or "",
            explicit_target=explicit_target,
        )

    # Views

    def list_debts_of_borrower(self, borrower_name: str) -> List[DebtEntry]:
        """Open loans owed by a borrower, largest balance first"""
        entries = [
            DebtEntry(loan.id, loan.lender_name, loan.balance, loan.note)
            for loan in self._open_loans()
            if names_match(loan.borrower_name, borrower_name) and loan.balance > 0
        ]
        entries.sort(key=lambda e: e.balance, reverse=True)
        return entries

    def list_loans_of_lender(self, lender_name: str) -> List[LenderLoanEntry]:
        """Open loans owed to a lender, largest balance first"""
        entries = [
            LenderLoanEntry(loan.id, loan.borrower_name, loan.balance, loan.note)
            for loan in self._open_loans()
            if names_match(loan.lender_name, lender_name) and loan.balance > 0
        ]
        entries.sort(key=lambda e: e.balance, reverse=True)
        return entries
