"""Transport - in-process broadcast pub/sub keyed by channel name.

Every publish is delivered synchronously to each subscriber currently
registered on the channel, in subscription order. Observers added with
subscribe_all() receive every envelope on every channel.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# Type for subscriber callbacks
Callback = Callable[[Any], None]


@dataclass(eq=False)
class Subscription:
    """Handle for one registered callback.

    ``channel`` is None for observers registered with subscribe_all().
    """

    channel: str | None
    callback: Callback
    active: bool = True


class Transport:
    """Channel registry with synchronous fan-out.

    Not thread-safe. Subscribe, unsubscribe and publish are atomic with
    respect to a single event loop because none of them suspends.
    Every string is an ordinary channel name; observers live apart from
    the channel registry.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._observers: list[Subscription] = []

    def subscribe(self, channel: str, callback: Callback) -> Subscription:
        """Register a callback on a channel.

        Args:
            channel: Channel name to listen on
            callback: Called with each envelope published on the channel

        Returns:
            Subscription handle accepted by unsubscribe()
        """
        subscription = Subscription(channel=channel, callback=callback)
        self._subscriptions.setdefault(channel, []).append(subscription)
        return subscription

    def subscribe_all(self, callback: Callback) -> Subscription:
        """Register an observer for every envelope on every channel."""
        subscription = Subscription(channel=None, callback=callback)
        self._observers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Removing twice is a no-op."""
        if not subscription.active:
            return
        subscription.active = False

        if subscription.channel is None:
            if subscription in self._observers:
                self._observers.remove(subscription)
            return

        subs = self._subscriptions.get(subscription.channel)
        if subs is None:
            return
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            del self._subscriptions[subscription.channel]

    def publish(self, channel: str, envelope: Any) -> int:
        """Deliver an envelope to every subscriber of a channel.

        Args:
            channel: Channel to publish on
            envelope: Object handed as-is to each subscriber

        Returns:
            Number of channel subscribers invoked (observers not counted)
        """
        # Snapshot so callbacks may (un)subscribe during delivery
        specific_subs = list(self._subscriptions.get(channel, []))
        observers = list(self._observers)

        delivered = 0
        for subscription in specific_subs:
            if not subscription.active:
                continue
            delivered += 1
            try:
                subscription.callback(envelope)
            except Exception:
                logger.exception(f"Error in subscriber for {channel}")

        for subscription in observers:
            if not subscription.active:
                continue
            try:
                subscription.callback(envelope)
            except Exception:
                logger.exception(f"Error in observer for {channel}")

        return delivered

    def subscriber_count(self, channel: str) -> int:
        """Number of active subscribers on a channel."""
        return len(self._subscriptions.get(channel, []))

    def observer_count(self) -> int:
        """Number of active subscribe_all() observers."""
        return len(self._observers)

    def channels(self) -> list[str]:
        """Channels that currently have at least one subscriber."""
        return list(self._subscriptions)

    def reset(self) -> None:
        """Drop every subscription (for testing)."""
        for subs in self._subscriptions.values():
            for subscription in subs:
                subscription.active = False
        for subscription in self._observers:
            subscription.active = False
        self._subscriptions = {}
        self._observers = []
