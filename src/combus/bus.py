"""ComBus - request/reply correlation over a broadcast transport.

dispatch() publishes a call on its type channel and waits on a private,
per-call issuer channel. listen() answers calls on a type channel by
publishing the handler's result on the caller's issuer channel.

    bus = ComBus()
    bus.listen("math.add_five", lambda envelope: envelope.payload + 5)
    reply = await bus.dispatch("math.add_five", 5)
    assert reply.payload == 10

When several handlers listen on the same type, all of them run and all of
them reply, but only the first reply to reach the issuer channel settles
the call. The rest are dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from .call import PendingCall
from .config import BusConfig
from .envelope import Envelope, create_envelope, create_issuer
from .transport import Transport

logger = logging.getLogger(__name__)

# Handlers may be plain functions or coroutine functions
Handler = Callable[[Envelope[Any]], Any]

# Marker for "use the configured dispatch timeout"
_CONFIGURED: Any = object()


class ComBus:
    """Correlation engine bound to one transport.

    Each instance has its own transport unless one is passed in, so tests
    and independent subsystems never share listeners by accident.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        config: BusConfig | None = None,
    ) -> None:
        self.transport = transport or Transport()
        self.config = config or BusConfig()
        # Strong references to running responder tasks
        self._responders: set[asyncio.Task[None]] = set()

    @property
    def responders(self) -> int:
        """Number of handler invocations that have not finished yet."""
        return len(self._responders)

    def dispatch(
        self,
        event_type: str,
        payload: Any = None,
        *,
        timeout: float | None = _CONFIGURED,
    ) -> PendingCall[Any]:
        """Publish a call and return a handle that settles with its reply.

        The call is published before this method returns; awaiting the
        handle is only needed to get the reply. With no listener on
        ``event_type`` the handle never settles unless a timeout applies.

        Args:
            event_type: Channel to publish the call on
            payload: Value handed to listeners by reference
            timeout: Seconds to wait for a reply, None to wait forever.
                Defaults to config.dispatch_timeout.

        Returns:
            PendingCall resolving to the reply envelope

        Raises:
            RuntimeError: If no event loop is running
            ValueError: If timeout is zero or negative
        """
        loop = asyncio.get_running_loop()
        if timeout is _CONFIGURED:
            timeout = self.config.dispatch_timeout
        elif timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        issuer = create_issuer(event_type)
        envelope = create_envelope(issuer, event_type, payload)
        call: PendingCall[Any] = PendingCall(self.transport, envelope, loop)

        delivered = self.transport.publish(event_type, envelope)
        if not delivered:
            logger.debug(f"No listener on {event_type}; dispatch {issuer} will not be answered")

        call.arm(timeout)
        logger.debug(f"Dispatched {event_type} as {issuer} to {delivered} listener(s)")
        return call

    def listen(self, event_type: str, handler: Handler) -> None:
        """Answer every call published on a channel.

        The handler runs during publish, in subscription order. A coroutine
        handler runs up to its first suspension there. Publishing its result
        on the caller's issuer channel is left to a responder task, so the
        caller's reply subscriber is always in place first. Listeners stay
        registered for the lifetime of the transport.

        Args:
            event_type: Channel to listen on
            handler: Called with the call envelope; may return an awaitable
        """

        def deliver(envelope: Envelope[Any]) -> None:
            loop = asyncio.get_running_loop()
            try:
                result = handler(envelope)
                if asyncio.iscoroutine(result):
                    result = asyncio.eager_task_factory(loop, result)
            except Exception:
                logger.exception(f"Handler failed for {envelope.issuer}; no reply published")
                return

            task = loop.create_task(
                self._reply(event_type, envelope, result),
                name=f"combus-respond:{envelope.issuer}",
            )
            self._responders.add(task)
            task.add_done_callback(self._on_responder_done)

        self.transport.subscribe(event_type, deliver)
        logger.debug(f"Listening on {event_type}")

    async def _reply(self, event_type: str, envelope: Envelope[Any], result: Any) -> None:
        """Wait for a handler result and publish it as the reply."""
        if inspect.isawaitable(result):
            result = await result

        # The reply's issuer field mirrors the type; only the channel correlates
        reply = create_envelope(event_type, event_type, result)
        if not self.transport.publish(envelope.issuer, reply):
            logger.debug(f"Reply to {envelope.issuer} dropped; call already settled or abandoned")

    def _on_responder_done(self, task: asyncio.Task[None]) -> None:
        self._responders.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Handler failed in {task.get_name()}; no reply published", exc_info=exc)

    async def drain(self) -> None:
        """Wait until every responder task has finished."""
        while self._responders:
            await asyncio.gather(*list(self._responders), return_exceptions=True)


# =============================================================================
# Default bus
# =============================================================================

_default_bus: ComBus | None = None


def get_bus() -> ComBus:
    """Get or create the process-wide default bus."""
    global _default_bus
    if _default_bus is None:
        _default_bus = ComBus(config=BusConfig.from_env())
    return _default_bus


def dispatch(
    event_type: str,
    payload: Any = None,
    *,
    timeout: float | None = _CONFIGURED,
) -> PendingCall[Any]:
    """Dispatch on the default bus."""
    return get_bus().dispatch(event_type, payload, timeout=timeout)


def listen(event_type: str, handler: Handler) -> None:
    """Listen on the default bus."""
    get_bus().listen(event_type, handler)


def reset() -> None:
    """Forget the default bus and its listeners (for testing)."""
    global _default_bus
    if _default_bus is not None:
        _default_bus.transport.reset()
    _default_bus = None
