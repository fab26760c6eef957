"""Side-effecting operation base class.

An operation creates one external document for an order: an invoice or
a waybill. The orchestrator calls ``execute`` at most once per attempt
and owns everything around it (idempotency, retries, recording state).

Example:
    >>> class CreditNoteOperation(SideEffectOperation):
    ...     operation_name = "credit_note"
    ...     markers = CREDIT_NOTE_MARKERS
    ...
    ...     async def execute(self, order, strategy):
    ...         response = await self.provider.create_credit_note(...)
    ...         return OperationResult(reference=response["number"])
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from orderflow.retry.state import OperationMarkers
    from orderflow.types import OperationResult, Order, RetryStrategy


class SideEffectOperation(ABC):
    """Abstract base class for non-idempotent document creation.

    Class Attributes:
        operation_name: Identifier used in logs and events.
        markers: Tag and field names recording this operation's state.
        tracks_fulfillments: Whether a tracked fulfillment counts as an
            existing document.
    """

    operation_name: str = ""
    markers: OperationMarkers
    tracks_fulfillments: bool = False

    @abstractmethod
    async def execute(self, order: Order, strategy: RetryStrategy) -> OperationResult:
        """Create the document, applying the strategy's modifications.

        Args:
            order: Current order state.
            strategy: Strategy selected for this attempt.

        Returns:
            OperationResult with the document reference.

        Raises:
            Any exception is caught by the orchestrator, classified and
            recorded.
        """
        ...

    @property
    def name(self) -> str:
        return self.operation_name or self.__class__.__name__

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


__all__ = ["SideEffectOperation"]
