"""Envelope definitions.

An envelope is the unit that travels through the bus:

    {
        "issuer": "1f3a9c0d2e4b7.todo.add",
        "type": "todo.add",
        "payload": {"id": 1, "name": "x"}
    }

Calls are published on the ``type`` channel. Replies are published on the
``issuer`` channel of the call they answer.
"""

from __future__ import annotations

import random
import time
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """A call or reply carried through the bus.

    The payload is held by reference. Every listener on a channel receives
    the same envelope object, so a listener that mutates the payload is
    visible to its siblings.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    issuer: str
    type: str
    payload: T | None = None


def create_issuer(event_type: str) -> str:
    """Allocate a reply channel name for one call.

    Format is ``<hex>.<event_type>``. The hex part comes from a random
    fraction of the current time in nanoseconds; the type suffix is only
    there to make issuers readable in traces.
    """
    return f"{int(random.random() * time.time_ns()):x}.{event_type}"


def create_envelope(issuer: str, event_type: str, payload: T | None = None) -> Envelope[T]:
    """Build an envelope without copying the payload."""
    return Envelope(issuer=issuer, type=event_type, payload=payload)
