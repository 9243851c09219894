"""
Tests for the mutation gate
"""

import threading

import pytest

from guild_bank.gate import MutationGate
from guild_bank.exceptions import LedgerBusy


class TestMutationGate:
    """Test the busy-flag gate"""
    
    def test_second_holder_is_rejected(self):
        """Test contention is rejected immediately rather than queued"""
        gate = MutationGate()
        
        with gate.hold():
            assert gate.busy
            with pytest.raises(LedgerBusy):
                with gate.hold():
                    pass
            assert gate.busy
        
        assert not gate.busy
    
    def test_released_after_exception(self):
        """Test the gate is released on error paths"""
        gate = MutationGate()
        
        with pytest.raises(RuntimeError):
            with gate.hold():
                raise RuntimeError("boom")
        
        assert not gate.busy
        assert gate.try_acquire()
        gate.release()
    
    def test_try_acquire(self):
        gate = MutationGate()
        assert gate.try_acquire()
        assert not gate.try_acquire()
        gate.release()
        assert not gate.busy
    
    def test_contention_from_another_thread(self):
        """Test a thread arriving while the gate is held is turned away"""
        gate = MutationGate()
        entered = threading.Event()
        leave = threading.Event()
        outcome = {}
        
        def holder():
            with gate.hold():
                entered.set()
                leave.wait(5)
        
        thread = threading.Thread(target=holder)
        thread.start()
        entered.wait(5)
        
        try:
            with gate.hold():
                outcome["acquired"] = True
        except LedgerBusy:
            outcome["acquired"] = False
        finally:
            leave.set()
            thread.join(5)
        
        assert outcome == {"acquired": False}
        assert not gate.busy
