"""
Test suite for the loan engine

Tests loan creation, target resolution, repayment clamping and resolution,
accrual, and the borrower/lender listings.
"""

import itertools

import pytest

from guild_bank.storage import LedgerState
from guild_bank.loans import (
    LoanEngine, Loan, LoanStatus, LoanTransactionType, DebtEntry,
    LenderLoanEntry, names_match, normalize_loan_id, total_balance
)
from guild_bank.exceptions import (
    InvalidName, LoanNotFound, LoanAlreadyResolved, BorrowerMismatch,
    NoMatchingLoan, AmbiguousLoanTarget, PersistenceFailure
)


class TestNameHelpers:
    
    def test_names_match_ignores_case_and_whitespace(self):
        assert names_match("  Vixil ", "vixil")
        assert names_match(None, "")
        assert not names_match("Vixil", "Vixi")
    
    def test_normalize_loan_id(self):
        assert normalize_loan_id("  loan_abc  ") == "loan_abc"
        assert normalize_loan_id("   ") is None
        assert normalize_loan_id(None) is None
        assert normalize_loan_id("x" * 100) == "x" * 64


class TestLoanCreation:
    """Test loan creation"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.state = LedgerState()
        self.engine = LoanEngine(self.state)
    
    def test_create_loan(self):
        """Test a new loan is open with the full amount and a creation entry"""
        loan = self.engine.create_loan("Vani", "Vixil", 100, "actor-1", "Tuning cost")
        
        assert isinstance(loan, Loan)
        assert loan.id.startswith("loan_")
        assert loan.borrower_name == "Vani"
        assert loan.lender_name == "Vixil"
        assert loan.balance == 100
        assert loan.status == LoanStatus.OPEN
        assert loan.note == "Tuning cost"
        
        record = self.state.loans[loan.id]
        assert set(record) == {"borrowerName", "lenderName", "balance", "status", "timestamp", "note"}
        
        history = self.engine.loan_history(loan.id)
        assert len(history) == 1
        assert history[0].type == LoanTransactionType.LOAN
        assert history[0].amount == 100
        assert history[0].actor_id == "actor-1"
        assert history[0].note == "Tuning cost"
    
    def test_creation_entry_has_default_note(self):
        loan = self.engine.create_loan("Vani", "Vixil", 100, "a")
        assert self.engine.loan_history(loan.id)[0].note == "Loan created"
        assert loan.note == ""
    
    def test_blank_borrower_defaults_to_unknown(self):
        loan = self.engine.create_loan("  ", "Vixil", 10, "a")
        assert loan.borrower_name == "Unknown"
    
    def test_blank_lender_is_rejected(self):
        """Test a loan needs a lender"""
        with pytest.raises(InvalidName):
            self.engine.create_loan("Vani", "   ", 10, "a")
        assert self.state.loans == {}
        assert self.state.loan_transactions == {}
    
    def test_loan_ids_are_unique(self):
        ids = {self.engine.create_loan("Vani", "Vixil", 10, "a").id for _ in range(50)}
        assert len(ids) == 50
    
    def test_generated_id_skips_existing_ids(self, monkeypatch):
        """Test a colliding candidate id is regenerated"""
        monkeypatch.setattr("guild_bank.loans.time.time", lambda: 1700000000.0)
        letters = itertools.chain(["a"] * 6, ["a"] * 6, ["b"] * 6)
        monkeypatch.setattr("guild_bank.loans.secrets.choice", lambda alphabet: next(letters))
        
        first = self.engine.generate_loan_id()
        self.state.loans[first] = {"borrowerName": "X", "lenderName": "Y", "balance": 1, "status": "open"}
        second = self.engine.generate_loan_id()
        
        assert first.endswith("_aaaaaa")
        assert second.endswith("_bbbbbb")
        assert first != second
    
    def test_generated_id_skips_ids_known_only_to_the_loan_log(self, monkeypatch):
        monkeypatch.setattr("guild_bank.loans.time.time", lambda: 1700000000.0)
        letters = itertools.chain(["a"] * 6, ["a"] * 6, ["c"] * 6)
        monkeypatch.setattr("guild_bank.loans.secrets.choice", lambda alphabet: next(letters))
        
        first = self.engine.generate_loan_id()
        self.state.loan_transactions[first] = []
        assert self.engine.generate_loan_id().endswith("_cccccc")


class TestRepayment:
    """Test repayment and loan resolution"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.state = LedgerState()
        self.engine = LoanEngine(self.state)
        self.loan = self.engine.create_loan("Malakai", "Vixil", 100, "a")
    
    def test_partial_repayment_by_lender_name(self):
        """Test repaying part of a loan through the lender name"""
        result = self.engine.repay("Malakai", 40, "Vixil", "actor-2")
        
        assert result.loan_id == self.loan.id
        assert result.old_balance == 100
        assert result.new_balance == 60
        assert not result.resolved
        assert not result.explicit_target
        assert self.engine.get_loan(self.loan.id).status == LoanStatus.OPEN
        
        last = self.engine.loan_history(self.loan.id)[-1]
        assert last.type == LoanTransactionType.REPAY
        assert last.amount == 40
        assert last.actor_id == "actor-2"
    
    def test_full_repayment_resolves_loan(self):
        """Test repaying the full balance resolves the loan with a resolve entry"""
        result = self.engine.repay("Malakai", 100, "Vixil", "a")
        
        assert result.resolved
        assert result.new_balance == 0
        loan = self.engine.get_loan(self.loan.id)
        assert loan.status == LoanStatus.RESOLVED
        assert loan.balance == 0
        
        history = self.engine.loan_history(self.loan.id)
        assert [t.type for t in history] == [
            LoanTransactionType.LOAN, LoanTransactionType.REPAY, LoanTransactionType.RESOLVE
        ]
        assert history[-1].amount == 0
        assert history[-1].note == "Loan resolved"
    
    def test_overpayment_clamps_balance_but_logs_requested_amount(self):
        """Test repaying 150 against 100 clamps to 0 and logs 150"""
        result = self.engine.repay("Malakai", 150, "Vixil", "a")
        
        assert result.new_balance == 0
        assert result.resolved
        repay_entry = self.engine.loan_history(self.loan.id)[1]
        assert repay_entry.type == LoanTransactionType.REPAY
        assert repay_entry.amount == 150
    
    def test_matching_is_case_insensitive_and_trimmed(self):
        result = self.engine.repay(" malakai ", 10, "  VIXIL ", "a")
        assert result.loan_id == self.loan.id
    
    def test_repay_by_loan_id(self):
        result = self.engine.repay("Malakai", 10, f"  {self.loan.id} ", "a")
        assert result.loan_id == self.loan.id
        assert result.explicit_target
    
    def test_repay_resolved_loan_is_rejected(self):
        """Test a resolved loan cannot be repaid again, even by id"""
        self.engine.repay("Malakai", 100, "Vixil", "a")
        log_size = len(self.engine.loan_history(self.loan.id))
        
        with pytest.raises(LoanAlreadyResolved):
            self.engine.repay("Malakai", 10, self.loan.id, "a")
        assert len(self.engine.loan_history(self.loan.id)) == log_size
    
    def test_lender_name_does_not_match_resolved_loans(self):
        self.engine.repay("Malakai", 100, "Vixil", "a")
        with pytest.raises(NoMatchingLoan):
            self.engine.repay("Malakai", 10, "Vixil", "a")
    
    def test_no_matching_loan(self):
        with pytest.raises(NoMatchingLoan) as exc_info:
            self.engine.repay("Malakai", 10, "Someone", "a")
        assert "no unresolved loan found" in str(exc_info.value).lower()
    
    def test_blank_target_is_rejected(self):
        with pytest.raises(InvalidName):
            self.engine.repay("Malakai", 10, "  ", "a")
    
    def test_borrower_mismatch(self):
        """Test a loan id cannot be repaid on behalf of another borrower"""
        with pytest.raises(BorrowerMismatch):
            self.engine.repay("Vani", 10, self.loan.id, "a")
        assert self.engine.get_loan(self.loan.id).balance == 100
    
    def test_id_known_only_to_loan_log_is_not_found(self):
        self.state.loan_transactions["loan_orphan"] = []
        with pytest.raises(LoanNotFound):
            self.engine.repay("Malakai", 10, "loan_orphan", "a")
    
    def test_ambiguous_lender_target(self):
        """Test two open loans with the same lender need an explicit id"""
        second = self.engine.create_loan("Malakai", "vixil", 50, "a", "Second loan")
        
        with pytest.raises(AmbiguousLoanTarget) as exc_info:
            self.engine.repay("Malakai", 10, "Vixil", "a")
        assert set(exc_info.value.loan_ids) == {self.loan.id, second.id}
        assert {"loan_id": second.id, "note": "Second loan"} in exc_info.value.candidates
        
        assert self.engine.repay("Malakai", 10, self.loan.id, "a").new_balance == 90
        assert self.engine.repay("Malakai", 10, second.id, "a").new_balance == 40


class TestAccrual:
    """Test accrual of interest and fees"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.state = LedgerState()
        self.engine = LoanEngine(self.state)
        self.loan = self.engine.create_loan("Malakai", "Vixil", 100, "a")
    
    def test_accrue(self):
        result = self.engine.accrue("Malakai", 10, "Vixil", "a")
        
        assert result.old_balance == 100
        assert result.new_balance == 110
        loan = self.engine.get_loan(self.loan.id)
        assert loan.balance == 110
        assert loan.status == LoanStatus.OPEN
        last = self.engine.loan_history(self.loan.id)[-1]
        assert last.type == LoanTransactionType.ACCRUE
        assert last.amount == 10
    
    def test_accrue_on_resolved_loan_is_rejected(self):
        """Test accrual cannot reopen a resolved loan"""
        self.engine.repay("Malakai", 100, "Vixil", "a")
        
        with pytest.raises(LoanAlreadyResolved):
            self.engine.accrue("Malakai", 10, self.loan.id, "a")
        loan = self.engine.get_loan(self.loan.id)
        assert loan.status == LoanStatus.RESOLVED
        assert loan.balance == 0
    
    def test_accrue_borrower_mismatch(self):
        with pytest.raises(BorrowerMismatch):
            self.engine.accrue("Vani", 10, self.loan.id, "a")


class TestLoanListings:
    """Test borrower and lender views"""
    
    def setup_method(self):
        """Set up test fixtures"""
        self.state = LedgerState()
        self.engine = LoanEngine(self.state)
        self.small = self.engine.create_loan("Malakai", "Vixil", 20, "a", "Rope")
        self.large = self.engine.create_loan("malakai", "Vani", 300, "a")
        self.paid = self.engine.create_loan("Malakai", "Vixil", 50, "a")
        self.engine.repay("Malakai", 50, self.paid.id, "a")
        self.other = self.engine.create_loan("Vani", "Vixil", 70, "a")
    
    def test_debts_of_borrower(self):
        """Test a borrower's open loans, largest first"""
        debts = self.engine.list_debts_of_borrower(" MALAKAI")
        
        assert debts == [
            DebtEntry(self.large.id, "Vani", 300, ""),
            DebtEntry(self.small.id, "Vixil", 20, "Rope"),
        ]
        assert total_balance(debts) == 320
    
    def test_loans_of_lender(self):
        """Test a lender's open loans, largest first"""
        loans = self.engine.list_loans_of_lender("vixil")
        
        assert loans == [
            LenderLoanEntry(self.other.id, "Vani", 70, ""),
            LenderLoanEntry(self.small.id, "Malakai", 20, "Rope"),
        ]
    
    def test_zero_balance_open_loans_are_hidden(self):
        self.state.loans[self.small.id]["balance"] = 0
        ids = [d.loan_id for d in self.engine.list_debts_of_borrower("Malakai")]
        assert ids == [self.large.id]
    
    def test_unknown_names_have_no_loans(self):
        assert self.engine.list_debts_of_borrower("Nobody") == []
        assert self.engine.list_loans_of_lender("Nobody") == []
    
    def test_get_loan_unknown(self):
        assert self.engine.get_loan("loan_missing") is None
        with pytest.raises(LoanNotFound):
            self.engine.loan_history("loan_missing")


class TestStoredLoanRecords:
    """Test loans read back from hand-edited or older snapshots"""
    
    def setup_method(self):
        """Set up a loan whose balance was stored as text"""
        self.state = LedgerState.from_dict({
            "loans": {
                "loan_text": {
                    "borrowerName": "Malakai", "lenderName": "Vixil", "balance": "100",
                    "status": "open", "timestamp": "2024-05-02T09:00:00.000Z", "note": ""
                }
            }
        })
        self.engine = LoanEngine(self.state)
    
    def test_numeric_text_balance_is_read_as_number(self):
        assert self.engine.get_loan("loan_text").balance == 100
    
    def test_repay_numeric_text_balance(self):
        """Test a small repayment does not resolve a loan stored as "100" """
        result = self.engine.repay("Malakai", 1, "loan_text", "a")
        
        assert result.old_balance == 100
        assert result.new_balance == 99
        assert not result.resolved
        assert self.state.loans["loan_text"]["balance"] == 99
        assert self.state.loans["loan_text"]["status"] == "open"
    
    def test_accrue_numeric_text_balance(self):
        result = self.engine.accrue("Malakai", 5, "Vixil", "a")
        assert result.old_balance == 100
        assert result.new_balance == 105
    
    def test_numeric_text_balance_is_listed(self):
        assert self.engine.list_debts_of_borrower("Malakai") == [
            DebtEntry("loan_text", "Vixil", 100, "")
        ]
        assert total_balance(self.engine.list_loans_of_lender("Vixil")) == 100
    
    @pytest.mark.parametrize("entry", [
        {"timestamp": "t", "type": "gift", "amount": 5, "actorId": "a"},
        {"timestamp": "t", "amount": 5, "actorId": "a"},
        "loan created",
    ])
    def test_malformed_loan_transaction_raises_persistence_failure(self, entry):
        """Test an unreadable log entry surfaces as a ledger error"""
        self.state.loan_transactions["loan_text"] = [entry]
        
        with pytest.raises(PersistenceFailure) as exc_info:
            self.engine.loan_history("loan_text")
        assert exc_info.value.code == "persistence_failure"
