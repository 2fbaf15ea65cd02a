"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - The queue broker is reached only through QueueClient
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - QueueClient is async: every real broker client does network IO
"""

from typing import Any, Protocol


class QueueClient(Protocol):
    """At-least-once work queue. Ordering across task ids is not guaranteed.

    enqueue() raises on failure; callers decide whether that failure matters.
    """
    async def enqueue(self, event_name: str, payload: dict[str, Any]) -> None: ...
