"""Pending calls.

A PendingCall is the reply side of one dispatch: a one-shot subscriber on
the call's issuer channel plus the future the caller awaits. It leaves the
``armed`` state exactly once, and every exit releases the subscriber.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Generator
from enum import Enum
from typing import Any, Generic, TypeVar

from .envelope import Envelope
from .transport import Subscription, Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DispatchTimeoutError(TimeoutError):
    """Raised when a dispatch with a timeout receives no reply in time."""

    def __init__(self, event_type: str, issuer: str, timeout: float) -> None:
        super().__init__(f"No reply for {event_type} within {timeout}s (issuer {issuer})")
        self.event_type = event_type
        self.issuer = issuer
        self.timeout = timeout


class CallState(str, Enum):
    """Lifecycle of a pending call."""

    ARMED = "armed"  # Waiting on the issuer channel
    FIRED = "fired"  # Settled with the first reply
    EXPIRED = "expired"  # Timed out
    CANCELLED = "cancelled"  # Caller gave up


class PendingCall(Generic[T]):
    """Awaitable handle for one in-flight dispatch.

    Usage:
        call = bus.dispatch("todo.add", todo)
        reply = await call
    """

    def __init__(
        self,
        transport: Transport,
        envelope: Envelope[Any],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.envelope = envelope
        self.state = CallState.ARMED
        self._transport = transport
        self._future: asyncio.Future[Envelope[T]] = loop.create_future()
        self._future.add_done_callback(self._on_future_done)
        self._loop = loop
        self._subscription: Subscription | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._timeout: float | None = None

    @property
    def issuer(self) -> str:
        return self.envelope.issuer

    @property
    def event_type(self) -> str:
        return self.envelope.type

    def arm(self, timeout: float | None = None) -> None:
        """Subscribe on the issuer channel and start the optional timer.

        Replies published on the issuer before this point are never seen.
        """
        self._subscription = self._transport.subscribe(self.issuer, self._on_reply)
        if timeout is not None:
            self._timeout = timeout
            self._timer = self._loop.call_later(timeout, self._expire)

    def _on_reply(self, reply: Envelope[T]) -> None:
        if self.state is not CallState.ARMED:
            # Redelivery after the one-shot subscriber already fired
            return
        if self._future.cancelled():
            # Cancelled awaiter whose done-callback has not run yet
            self._on_future_done(self._future)
            return
        self.state = CallState.FIRED
        self._release()
        logger.debug(f"Reply settled {self.issuer}")
        self._future.set_result(reply)

    def _expire(self) -> None:
        self._timer = None
        timeout = self._timeout
        if self.state is not CallState.ARMED or timeout is None:
            return
        if self._future.cancelled():
            self._on_future_done(self._future)
            return
        self.state = CallState.EXPIRED
        self._release()
        logger.debug(f"Dispatch {self.issuer} timed out after {timeout}s")
        self._future.set_exception(DispatchTimeoutError(self.event_type, self.issuer, timeout))

    def _on_future_done(self, future: asyncio.Future[Envelope[T]]) -> None:
        # The awaiting task was cancelled, which cancels the future it awaited
        if future.cancelled() and self.state is CallState.ARMED:
            self.state = CallState.CANCELLED
            self._release()
            logger.debug(f"Dispatch {self.issuer} cancelled")

    def _release(self) -> None:
        if self._subscription is not None:
            self._transport.unsubscribe(self._subscription)
            self._subscription = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def cancel(self) -> bool:
        """Stop waiting for a reply.

        Returns:
            True if the call was still armed, False if it had already left
            that state
        """
        if self.state is not CallState.ARMED:
            return False
        self.state = CallState.CANCELLED
        self._release()
        self._future.cancel()
        return True

    def done(self) -> bool:
        return self._future.done()

    def result(self) -> Envelope[T]:
        """Return the reply. Raises like asyncio.Future.result()."""
        return self._future.result()

    def __await__(self) -> Generator[Any, None, Envelope[T]]:
        return self._future.__await__()

    def __repr__(self) -> str:
        return f"<PendingCall {self.issuer} {self.state.value}>"
