"""
Flowkit - Seal Tracking

Polls an access node until a transaction is sealed.
"""

import threading
import time
from typing import Callable, Optional

from .constants import SEAL_POLL_INTERVAL, SEAL_TIMEOUT
from .errors import SealTimeoutError, TransactionError
from .models import Identifier, TransactionResult, TransactionStatus


class SealTracker:
    """
    Waits for transactions to be sealed.

    Example:
        tracker = SealTracker(lambda txid: api.fetch_result(txid), poll_interval=0.5)
        result = tracker.wait_for_seal(txid)
    """

    def __init__(
        self,
        fetch: Callable[[Identifier], TransactionResult],
        poll_interval: float = SEAL_POLL_INTERVAL,
        timeout: float = SEAL_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the tracker.

        Args:
            fetch: Returns the current result of a transaction.
            poll_interval: Seconds between polls.
            timeout: Seconds before giving up.
            sleep: Sleep function, replaceable in tests.
        """
        self.fetch = fetch
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep

    def get_status(self, txid: Identifier) -> TransactionStatus:
        return self.fetch(txid).status

    def wait_for_seal(
        self,
        txid: Identifier,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None
    ) -> TransactionResult:
        """
        Block until the transaction is sealed.

        Args:
            txid: Transaction to wait for.
            timeout: Override of the tracker timeout.
            cancel: Event that aborts the wait when set.

        Returns:
            The sealed result; it may still carry an execution error.

        Raises:
            SealTimeoutError: If the timeout passes first.
            TransactionError: If the transaction expired or the wait was
                cancelled.
        """
        timeout = self.timeout if timeout is None else timeout
        start_time = time.monotonic()

        while True:
            if cancel is not None and cancel.is_set():
                raise TransactionError(f"waiting for transaction {txid} was cancelled")

            result = self.fetch(txid)
            if result.status == TransactionStatus.SEALED:
                return result
            if result.status == TransactionStatus.EXPIRED:
                raise TransactionError(f"transaction {txid} expired", {"txid": str(txid)})

            if time.monotonic() - start_time >= timeout:
                raise SealTimeoutError(str(txid), timeout, result.status.value)

            if cancel is not None:
                if cancel.wait(self.poll_interval):
                    raise TransactionError(f"waiting for transaction {txid} was cancelled")
            else:
                self._sleep(self.poll_interval)
