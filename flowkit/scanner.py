"""
Flowkit - Event Scanner

Fetches events over large height ranges by splitting the range into
stripes and querying them on a pool of worker threads.
"""

import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Optional

from .constants import DEFAULT_BLOCKS_PER_WORKER, DEFAULT_WORKER_COUNT
from .core.gateway import Gateway
from .errors import InvalidArgumentError, NetworkError
from .models import BlockEvents


@dataclass
class EventWorker:
    """Worker pool settings."""
    count: int = DEFAULT_WORKER_COUNT
    blocks_per_worker: int = DEFAULT_BLOCKS_PER_WORKER


@dataclass(frozen=True)
class EventRangeQuery:
    """One gateway query: an event type over an inclusive height range."""
    type: str
    start_height: int
    end_height: int


def make_event_queries(
    names: List[str],
    start_height: int,
    end_height: int,
    blocks_per_worker: int = DEFAULT_BLOCKS_PER_WORKER
) -> List[EventRangeQuery]:
    """
    Split ``[start_height, end_height]`` into stripes, one query per
    stripe and event name.

    Every height in the range falls into exactly one stripe.
    """
    if blocks_per_worker < 1:
        raise InvalidArgumentError(f"blocks per worker must be positive, got {blocks_per_worker}")

    queries = []
    for stripe_start in range(start_height, end_height + 1, blocks_per_worker):
        stripe_end = min(stripe_start + blocks_per_worker - 1, end_height)
        for name in names:
            queries.append(EventRangeQuery(name, stripe_start, stripe_end))
    return queries


class EventScanner:
    """
    Concurrent event fetcher.

    Results are not ordered by height; sort by ``height`` if needed.

    Example:
        scanner = EventScanner(gateway)
        blocks = scanner.get_events(["flow.AccountCreated"], 1000, 5000, EventWorker(count=4))
    """

    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    def get_events(
        self,
        names: List[str],
        start_height: int,
        end_height: int,
        worker: Optional[EventWorker] = None,
        cancel: Optional[threading.Event] = None
    ) -> List[BlockEvents]:
        """
        Fetch events of the given types in the inclusive range.

        Args:
            names: Event type identifiers.
            start_height: First height.
            end_height: Last height.
            worker: Pool settings, one worker of 250 blocks by default.
            cancel: Event that stops pending queries when set.

        Returns:
            Block events from every stripe, in completion order.

        Raises:
            InvalidArgumentError: If the range is reversed.
            NetworkError: First gateway failure, or cancellation.
        """
        if end_height < start_height:
            raise InvalidArgumentError(
                f"cannot have end height ({end_height}) of block range less that start height ({start_height})"
            )

        worker = worker or EventWorker()
        queries = make_event_queries(names, start_height, end_height, worker.blocks_per_worker)
        cancel = cancel or threading.Event()

        def run(query: EventRangeQuery) -> List[BlockEvents]:
            if cancel.is_set():
                raise NetworkError("event query cancelled")
            return self.gateway.get_events(query.type, query.start_height, query.end_height)

        results: List[BlockEvents] = []
        with ThreadPoolExecutor(max_workers=max(1, worker.count)) as pool:
            futures = [pool.submit(run, query) for query in queries]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)

            for future in done:
                error = future.exception()
                if error is not None:
                    cancel.set()
                    for p in pending:
                        p.cancel()
                    raise error

            for future in futures:
                results.extend(future.result())

        return results
