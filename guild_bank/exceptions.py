"""Ledger and loan errors, each with a stable code used at the operation boundary"""

from typing import Dict, List, Optional


class LedgerError(Exception):
    """Base exception for ledger and loan operations"""
    code = "ledger_error"


class InvalidAmount(LedgerError):
    """Amount is non-numeric, not finite, or not strictly positive"""
    code = "invalid_amount"
    
    def __init__(self, raw_value=None):
        self.raw_value = raw_value
        super().__init__("Amount must be a positive number.")


class InvalidName(LedgerError):
    """A required name or loan target is blank"""
    code = "invalid_name"


class InsufficientBalance(LedgerError):
    """Withdrawal exceeds the current account balance"""
    code = "insufficient_balance"
    
    def __init__(self, account_name: str, requested: int, balance: int):
        self.account_name = account_name
        self.requested = requested
        self.balance = balance
        super().__init__(
            f"Cannot withdraw {requested} GP from {account_name}; it only has {balance} GP."
        )


class NoTransactions(LedgerError):
    """Account has no transaction history yet"""
    code = "no_transactions"
    
    def __init__(self, account_name: str):
        self.account_name = account_name
        super().__init__(f"No transactions for {account_name} yet.")


class LoanNotFound(LedgerError):
    code = "loan_not_found"
    
    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} not found.")


class LoanAlreadyResolved(LedgerError):
    code = "loan_already_resolved"
    
    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan {loan_id} is already resolved.")


class BorrowerMismatch(LedgerError):
    """Loan's borrower does not match the borrower the caller named"""
    code = "borrower_mismatch"
    
    def __init__(self, loan_id: str, borrower_name: str):
        self.loan_id = loan_id
        self.borrower_name = borrower_name
        super().__init__(f"Loan {loan_id} does not belong to borrower {borrower_name}.")


class NoMatchingLoan(LedgerError):
    """No open loan matches a lender-name target"""
    code = "no_matching_loan"
    
    def __init__(self, borrower_name: str, lender_name: str):
        self.borrower_name = borrower_name
        self.lender_name = lender_name
        super().__init__(
            f"No unresolved loan found for borrower {borrower_name} with lender {lender_name}."
        )


class AmbiguousLoanTarget(LedgerError):
    """Several open loans match a lender-name target; caller must pick a loan id"""
    code = "ambiguous_loan_target"
    
    def __init__(self, borrower_name: str, lender_name: str,
                 candidates: List[Dict[str, str]]):
        self.borrower_name = borrower_name
        self.lender_name = lender_name
        self.candidates = candidates
        ids = ", ".join(c["loan_id"] for c in candidates)
        super().__init__(
            f"Borrower {borrower_name} has multiple unresolved loans with lender "
            f"{lender_name}; use a loan id instead ({ids})."
        )
    
    @property
    def loan_ids(self) -> List[str]:
        return [c["loan_id"] for c in self.candidates]


class LedgerBusy(LedgerError):
    """Another mutating operation holds the gate"""
    code = "busy"
    
    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Busy processing another transaction, try again in a moment.")


class PersistenceFailure(LedgerError):
    """Snapshot could not be read or written"""
    code = "persistence_failure"
