"""
Reporting Module

Read-only rankings derived on demand from the ledger state: the wealth
leaderboard over account balances and the debt leaderboard over open loans.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Any

from .amounts import stored_number
from .loans import LoanStatus, UNKNOWN_NAME
from .storage import LedgerState


@dataclass
class Leaderboard:
    """Both rankings side by side"""
    balances: List[Tuple[str, Any]] = field(default_factory=list)
    debtors: List[Tuple[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.balances and not self.debtors


class AggregationViews:
    """Computes rankings straight from the in-memory state; never takes the gate"""

    def __init__(self, state: LedgerState):
        self.state = state

    def top_balances(self, limit: int) -> List[Tuple[str, Any]]:
        """Accounts with a positive balance, richest first"""
        entries = []
        for name, raw_balance in self.state.balances.items():
            balance = stored_number(raw_balance)
            if balance is None or balance <= 0:
                continue
            entries.append((str(name), balance))

        entries.sort(key=lambda e: e[1], reverse=True)
        return entries[:max(limit, 0)]

    def top_debtors(self, limit: int) -> List[Tuple[str, Any]]:
        """
        Total open debt per borrower, largest first.

        Loans are grouped by the borrower string exactly as stored, so "Vani"
        and "vani" are ranked separately even though repay/accrue treat them
        as the same borrower.
        """
        debt_by_borrower: Dict[str, Any] = {}

        for record in self.state.loans.values():
            if not record:
                continue
            if record.get("status") == LoanStatus.RESOLVED.value:
                continue

            balance = stored_number(record.get("balance"))
            if balance is None or balance <= 0:
                continue

            borrower_name = record.get("borrowerName") or UNKNOWN_NAME
            debt_by_borrower[borrower_name] = debt_by_borrower.get(borrower_name, 0) + balance

        entries = [(name, debt) for name, debt in debt_by_borrower.items() if debt > 0]
        entries.sort(key=lambda e: e[1], reverse=True)
        return entries[:max(limit, 0)]

    def leaderboard(self, limit: int) -> Leaderboard:
        return Leaderboard(
            balances=self.top_balances(limit),
            debtors=self.top_debtors(limit),
        )
