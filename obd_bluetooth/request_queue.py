"""Pending connection requests and their fan-out."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .handle import ConnectionHandle

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """A caller waiting on the outcome of the current connect attempt."""

    future: "asyncio.Future[ConnectionHandle]"
    request_id: int = field(default=0)

    def settle(
        self,
        result: Optional["ConnectionHandle"] = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """Resolve or reject the request; returns False if it was already done."""
        if self.future.done():
            # cancelled by the event loop, e.g. at shutdown
            logger.debug("request %d already settled, skipping", self.request_id)
            return False
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)  # type: ignore[arg-type]
        return True


class RequestQueue:
    """Requests accumulated while a connect attempt is in flight."""

    def __init__(self) -> None:
        self._requests: list[PendingRequest] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._requests)

    def enqueue(self, future: "asyncio.Future[ConnectionHandle]") -> PendingRequest:
        """Append a request in arrival order."""
        request = PendingRequest(future=future, request_id=self._next_id)
        self._next_id += 1
        self._requests.append(request)
        return request

    def drain(
        self,
        result: Optional["ConnectionHandle"] = None,
        error: Optional[BaseException] = None,
    ) -> int:
        """
        Settle every queued request with one outcome and empty the queue.

        The queue is swapped out before settling so requests enqueued by
        callbacks join a fresh queue instead of this drain.

        Args:
            result: Handle to resolve with when error is None
            error: Failure to reject with

        Returns:
            Number of requests actually settled
        """
        requests, self._requests = self._requests, []
        settled = 0
        for request in requests:
            if request.settle(result=result, error=error):
                settled += 1
        outcome = "rejected" if error is not None else "resolved"
        logger.debug("%s %d of %d pending connection requests", outcome, settled, len(requests))
        return settled
