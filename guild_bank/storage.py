"""
Snapshot Storage Module

Provides the in-memory ledger state and its persistence as a single JSON
document. The whole document is rewritten on every save; there is no
incremental on-disk format.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field
from pathlib import Path
import json
import os
import tempfile

from .exceptions import PersistenceFailure
from .logging_config import get_logger


logger = get_logger("guild_bank.storage")


# Snapshot top-level keys, in the order they are written
BALANCES_KEY = "balances"
TRANSACTIONS_KEY = "transactions"
PROFILES_KEY = "profiles"
LOANS_KEY = "loans"
LOAN_TRANSACTIONS_KEY = "loanTransactions"

SNAPSHOT_KEYS = (
    BALANCES_KEY,
    TRANSACTIONS_KEY,
    PROFILES_KEY,
    LOANS_KEY,
    LOAN_TRANSACTIONS_KEY,
)


@dataclass
class LedgerState:
    """
    The complete mutable state graph shared by the ledger and the loan engine.

    Records are kept as plain dictionaries in their snapshot shape so that
    fields this code does not know about survive a load/save round-trip.
    """
    balances: Dict[str, Any] = field(default_factory=dict)
    transactions: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    profiles: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    loans: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    loan_transactions: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)  # Unknown top-level keys

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the snapshot document layout"""
        result = {
            BALANCES_KEY: self.balances,
            TRANSACTIONS_KEY: self.transactions,
            PROFILES_KEY: self.profiles,
            LOANS_KEY: self.loans,
            LOAN_TRANSACTIONS_KEY: self.loan_transactions,
        }
        for key, value in self.extra.items():
            if key not in result:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'LedgerState':
        """
        Create state from a snapshot document.

        Missing (or malformed) top-level containers are backfilled with empty
        ones so older snapshots keep loading.
        """
        if not isinstance(data, dict):
            data = {}

        def container(key: str) -> Dict[str, Any]:
            value = data.get(key)
            return value if isinstance(value, dict) else {}

        return cls(
            balances=container(BALANCES_KEY),
            transactions=container(TRANSACTIONS_KEY),
            profiles=container(PROFILES_KEY),
            loans=container(LOANS_KEY),
            loan_transactions=container(LOAN_TRANSACTIONS_KEY),
            extra={k: v for k, v in data.items() if k not in SNAPSHOT_KEYS},
        )


class SnapshotStore(ABC):
    """Abstract interface for snapshot backends"""

    @abstractmethod
    def load(self) -> LedgerState:
        """Load the persisted state, or an empty state if there is none"""
        pass

    @abstractmethod
    def save(self, state: LedgerState) -> bool:
        """Persist the whole state; returns False (after logging) on failure"""
        pass

    def serialize(self, state: LedgerState) -> str:
        return json.dumps(state.to_dict(), indent=2, ensure_ascii=False)


class InMemorySnapshotStore(SnapshotStore):
    """In-memory snapshot store for testing"""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._document: Optional[str] = None
        self.save_count = 0
        if initial is not None:
            self._document = json.dumps(initial)

    def load(self) -> LedgerState:
        if self._document is None:
            return LedgerState()
        return LedgerState.from_dict(json.loads(self._document))

    def save(self, state: LedgerState) -> bool:
        self._document = self.serialize(state)
        self.save_count += 1
        return True

    def get_document(self) -> Optional[Dict[str, Any]]:
        """Get the last saved document for inspection"""
        if self._document is None:
            return None
        return json.loads(self._document)


class JSONFileSnapshotStore(SnapshotStore):
    """Snapshot store backed by a single JSON file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_document(self) -> Any:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Could not read snapshot {self.path}: {e}") from e

    def _write_document(self, document: str) -> None:
        """Write to a temporary file beside the snapshot and move it into place"""
        tmp_path = None
        try:
            directory = self.path.parent
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(directory)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(document)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise PersistenceFailure(f"Could not write snapshot {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def load(self) -> LedgerState:
        """
        Read the snapshot file.

        A missing file yields an empty state. Any read or parse failure is
        logged and also yields an empty state rather than stopping the process.
        """
        if not self.path.exists():
            logger.info("No snapshot at %s, starting with empty state", self.path)
            return LedgerState()

        try:
            data = self._read_document()
        except PersistenceFailure:
            logger.exception("Failed to load bank data from %s", self.path)
            return LedgerState()

        if not isinstance(data, dict):
            logger.error("Snapshot %s is not a JSON object, starting with empty state", self.path)
            return LedgerState()

        return LedgerState.from_dict(data)

    def save(self, state: LedgerState) -> bool:
        """
        Overwrite the snapshot file.

        Readers of the file never see a partial write. Failures (including a
        state that cannot be serialized) are logged and reported as False.
        """
        try:
            try:
                document = self.serialize(state)
            except (TypeError, ValueError) as e:
                raise PersistenceFailure(f"Could not serialize bank data: {e}") from e
            self._write_document(document)
        except PersistenceFailure:
            logger.exception("Failed to save bank data to %s", self.path)
            return False
        return True
