"""Verifiable-randomness provider boundary.

The provider is asynchronous: ``request`` returns an id immediately and
the words arrive later through a callback issued from the provider's
designated oracle address. Nothing here blocks waiting for an answer.

QueuedRandomnessProvider models the message-passing boundary with an
outbound queue. A driver (a test, a simulation, or a bridge to a real
VRF coordinator) drains the queue and delivers words back through the
bound handler.
"""

from __future__ import annotations

import abc
import secrets
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Sequence

FulfillmentHandler = Callable[[str, int, Sequence[int]], object]

WORD_BITS = 256


@dataclass(frozen=True)
class OutboundRequest:
    """A request waiting on the provider side."""
    request_id: int
    word_count: int
    fee: Decimal


class RandomnessProvider(abc.ABC):
    """request/callback pair consumed by the orchestrator."""

    @property
    @abc.abstractmethod
    def oracle_address(self) -> str:
        """The only address allowed to deliver fulfilments."""

    @abc.abstractmethod
    def request(self, fee: Decimal, word_count: int) -> int:
        """Submit a request and return the provider's request id."""

    @abc.abstractmethod
    def bind(self, handler: FulfillmentHandler) -> None:
        """Register the inbound callback handler."""


class QueuedRandomnessProvider(RandomnessProvider):
    """In-process provider with an explicit outbound queue.

    Usage:
        provider = QueuedRandomnessProvider("vrf-coordinator")
        provider.bind(service.on_fulfilled)
        ...
        provider.deliver(request_id, [word1, word2])   # explicit words
        provider.fulfil_next()                          # random words
    """

    def __init__(self, oracle_address: str, first_request_id: int = 1) -> None:
        self._oracle_address = oracle_address
        self._next_id = first_request_id
        self._queue: deque[OutboundRequest] = deque()
        self._handler: Optional[FulfillmentHandler] = None

    @property
    def oracle_address(self) -> str:
        return self._oracle_address

    def bind(self, handler: FulfillmentHandler) -> None:
        self._handler = handler

    def request(self, fee: Decimal, word_count: int) -> int:
        if word_count < 1:
            raise ValueError("Must request at least one word")
        request_id = self._next_id
        self._next_id += 1
        self._queue.append(OutboundRequest(request_id, word_count, fee))
        return request_id

    def pending(self) -> list[OutboundRequest]:
        return list(self._queue)

    def deliver(self, request_id: int, words: Sequence[int]) -> object:
        """Deliver explicit words for a queued request via the handler."""
        if self._handler is None:
            raise RuntimeError("No fulfilment handler bound")
        for outbound in list(self._queue):
            if outbound.request_id == request_id:
                self._queue.remove(outbound)
                break
        return self._handler(self._oracle_address, request_id, list(words))

    def fulfil_next(self) -> object:
        """Answer the oldest queued request with fresh random words."""
        if not self._queue:
            raise RuntimeError("No outstanding randomness requests")
        outbound = self._queue[0]
        words = [secrets.randbits(WORD_BITS) for _ in range(outbound.word_count)]
        return self.deliver(outbound.request_id, words)
