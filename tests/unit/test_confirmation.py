"""
Unit tests for seal tracking.
"""

import threading

import pytest

from flowkit.confirmation import SealTracker
from flowkit.errors import SealTimeoutError, TransactionError
from flowkit.models import Identifier, TransactionResult, TransactionStatus


TXID = Identifier(b"\xaa" * 32)


def scripted(*statuses):
    """Fetch function returning the given statuses, then the last one forever."""
    calls = []

    def fetch(txid):
        calls.append(txid)
        status = statuses[min(len(calls), len(statuses)) - 1]
        return TransactionResult(status=status, transaction_id=txid)

    fetch.calls = calls
    return fetch


def tracker(fetch, **kwargs) -> SealTracker:
    return SealTracker(fetch, poll_interval=0, sleep=lambda _: None, **kwargs)


class TestSealTracker:
    """Tests for SealTracker."""

    @pytest.mark.unit
    def test_waits_until_sealed(self):
        """Pending and executed results are polled past."""
        fetch = scripted(TransactionStatus.PENDING, TransactionStatus.EXECUTED, TransactionStatus.SEALED)

        result = tracker(fetch).wait_for_seal(TXID)

        assert result.is_sealed
        assert len(fetch.calls) == 3

    @pytest.mark.unit
    def test_sealed_with_error_is_returned(self):
        """Execution errors are the caller's to inspect."""
        def fetch(txid):
            return TransactionResult(status=TransactionStatus.SEALED, error_message="panic")

        assert tracker(fetch).wait_for_seal(TXID).error == "panic"

    @pytest.mark.unit
    def test_expired(self):
        """Expired transactions stop the wait."""
        fetch = scripted(TransactionStatus.PENDING, TransactionStatus.EXPIRED)
        with pytest.raises(TransactionError):
            tracker(fetch).wait_for_seal(TXID)

    @pytest.mark.unit
    def test_timeout(self):
        """A transaction that never seals times out with its last status."""
        fetch = scripted(TransactionStatus.PENDING)

        with pytest.raises(SealTimeoutError) as exc:
            tracker(fetch, timeout=0).wait_for_seal(TXID)

        assert exc.value.status == "Pending"
        assert exc.value.txid == str(TXID)

    @pytest.mark.unit
    def test_cancel(self):
        """A set cancel event aborts before polling."""
        fetch = scripted(TransactionStatus.PENDING)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(TransactionError):
            tracker(fetch).wait_for_seal(TXID, cancel=cancel)
        assert fetch.calls == []

    @pytest.mark.unit
    def test_get_status(self):
        """Status lookups fetch once."""
        fetch = scripted(TransactionStatus.FINALIZED)
        assert tracker(fetch).get_status(TXID) == TransactionStatus.FINALIZED
