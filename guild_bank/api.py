"""
FastAPI REST API Module

Provides REST endpoints over the guild bank: balances and history, deposits
and withdrawals, loans, repayments, accruals and leaderboards. Runs on port
8090 by default.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
from fastapi import FastAPI, HTTPException, Depends, status
from pydantic import BaseModel, Field
import uvicorn

from .accounts import Transaction
from .bank import Bank, OperationResult
from .config import get_config
from .loans import Loan, LoanTransaction, total_balance


# Pydantic models for API requests
Amount = Union[int, float, str]


class BalanceChangeRequest(BaseModel):
    amount: Amount = Field(..., description="Positive GP amount; floored to an integer")
    actor_id: str = Field(..., description="Opaque identifier of whoever performs the operation")
    note: str = ""


class CreateLoanRequest(BaseModel):
    borrower_name: Optional[str] = None
    lender_name: str
    amount: Amount
    actor_id: str
    note: str = ""


class LoanTargetRequest(BaseModel):
    borrower_name: str
    amount: Amount
    target: str = Field(..., description="Loan id or lender name")
    actor_id: str


# Rejection code -> HTTP status
ERROR_STATUS = {
    "invalid_amount": status.HTTP_400_BAD_REQUEST,
    "invalid_name": status.HTTP_400_BAD_REQUEST,
    "insufficient_balance": status.HTTP_400_BAD_REQUEST,
    "borrower_mismatch": status.HTTP_400_BAD_REQUEST,
    "loan_not_found": status.HTTP_404_NOT_FOUND,
    "no_matching_loan": status.HTTP_404_NOT_FOUND,
    "no_transactions": status.HTTP_404_NOT_FOUND,
    "loan_already_resolved": status.HTTP_409_CONFLICT,
    "ambiguous_loan_target": status.HTTP_409_CONFLICT,
    "busy": status.HTTP_503_SERVICE_UNAVAILABLE,
    "persistence_failure": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def unwrap(result: OperationResult) -> Any:
    """Return the value of a successful result or raise the matching HTTPException"""
    if result.ok:
        return result.value
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
        detail={"error": result.error_code, "message": result.message, **result.details},
    )


def _transaction_dict(transaction: Union[Transaction, LoanTransaction]) -> Dict[str, Any]:
    return {
        "timestamp": transaction.timestamp,
        "type": transaction.type.value,
        "amount": transaction.amount,
        "actor_id": transaction.actor_id,
        "note": transaction.note,
    }


def _loan_dict(loan: Loan) -> Dict[str, Any]:
    return {
        "loan_id": loan.id,
        "borrower_name": loan.borrower_name,
        "lender_name": loan.lender_name,
        "balance": loan.balance,
        "status": loan.status.value,
        "timestamp": loan.timestamp,
        "note": loan.note,
    }


_bank: Optional[Bank] = None


def get_bank() -> Bank:
    """Bank backed by the configured snapshot file, created on first use"""
    global _bank
    if _bank is None:
        _bank = Bank.from_file()
    return _bank


def set_bank(bank: Optional[Bank]) -> None:
    """Swap the bank instance the API serves (tests, embedding)"""
    global _bank
    _bank = bank


app = FastAPI(
    title="Guild Bank API",
    description="GP ledger and loan book",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.get("/health")
async def health_check(bank: Bank = Depends(get_bank)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "busy": bank.gate.busy,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.get("/accounts/{account_name}/balance")
async def get_balance(account_name: str, bank: Bank = Depends(get_bank)):
    return {"account_name": account_name, "balance": unwrap(bank.balance(account_name))}


@app.get("/accounts/{account_name}/history")
async def get_history(account_name: str, count: Optional[str] = None, bank: Bank = Depends(get_bank)):
    """Most recent bank transactions of an account"""
    transactions = unwrap(bank.history(account_name, count))
    return {
        "account_name": account_name,
        "transactions": [_transaction_dict(t) for t in transactions]
    }


@app.post("/accounts/{account_name}/deposit")
async def deposit(account_name: str, request: BalanceChangeRequest, bank: Bank = Depends(get_bank)):
    result = bank.deposit(account_name, request.amount, request.actor_id, request.note)
    change = unwrap(result)
    return {
        "account_name": change.account_name,
        "amount": change.amount,
        "old_balance": change.old_balance,
        "new_balance": change.new_balance,
        "persisted": result.persisted
    }


@app.post("/accounts/{account_name}/withdraw")
async def withdraw(account_name: str, request: BalanceChangeRequest, bank: Bank = Depends(get_bank)):
    result = bank.withdraw(account_name, request.amount, request.actor_id, request.note)
    change = unwrap(result)
    return {
        "account_name": change.account_name,
        "amount": change.amount,
        "old_balance": change.old_balance,
        "new_balance": change.new_balance,
        "persisted": result.persisted
    }


@app.post("/loans", status_code=status.HTTP_201_CREATED)
async def create_loan(request: CreateLoanRequest, bank: Bank = Depends(get_bank)):
    result = bank.create_loan(
        request.borrower_name, request.lender_name, request.amount, request.actor_id, request.note
    )
    loan = unwrap(result)
    return {**_loan_dict(loan), "persisted": result.persisted}


@app.post("/loans/repay")
async def repay_loan(request: LoanTargetRequest, bank: Bank = Depends(get_bank)):
    result = bank.repay(request.borrower_name, request.amount, request.target, request.actor_id)
    return {**asdict(unwrap(result)), "persisted": result.persisted}


@app.post("/loans/accrue")
async def accrue_loan(request: LoanTargetRequest, bank: Bank = Depends(get_bank)):
    result = bank.accrue(request.borrower_name, request.amount, request.target, request.actor_id)
    return {**asdict(unwrap(result)), "persisted": result.persisted}


@app.get("/loans/{loan_id}")
async def get_loan(loan_id: str, bank: Bank = Depends(get_bank)):
    return _loan_dict(unwrap(bank.get_loan(loan_id)))


@app.get("/loans/{loan_id}/transactions")
async def get_loan_transactions(loan_id: str, bank: Bank = Depends(get_bank)):
    transactions = unwrap(bank.loan_history(loan_id))
    return {"loan_id": loan_id, "transactions": [_transaction_dict(t) for t in transactions]}


@app.get("/borrowers/{borrower_name}/debts")
async def get_debts(borrower_name: str, bank: Bank = Depends(get_bank)):
    """Unresolved loans of a borrower"""
    entries = unwrap(bank.debts_of_borrower(borrower_name))
    return {
        "borrower_name": borrower_name,
        "loans": [asdict(e) for e in entries],
        "total": total_balance(entries)
    }


@app.get("/lenders/{lender_name}/loans")
async def get_lender_loans(lender_name: str, bank: Bank = Depends(get_bank)):
    """Unresolved loans where this person is the lender"""
    entries = unwrap(bank.loans_of_lender(lender_name))
    return {
        "lender_name": lender_name,
        "loans": [asdict(e) for e in entries],
        "total": total_balance(entries)
    }


@app.get("/leaderboard")
async def get_leaderboard(count: Optional[str] = None, bank: Bank = Depends(get_bank)):
    board = unwrap(bank.leaderboard(count))
    return {
        "balances": [{"name": name, "balance": balance} for name, balance in board.balances],
        "debtors": [{"name": name, "debt": debt} for name, debt in board.debtors]
    }


@app.get("/")
async def root():
    """Root endpoint with system information"""
    return {
        "system": "Guild Bank",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "accounts": "/accounts/{name}",
            "loans": "/loans",
            "borrowers": "/borrowers/{name}/debts",
            "lenders": "/lenders/{name}/loans",
            "leaderboard": "/leaderboard"
        }
    }


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "guild_bank.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
