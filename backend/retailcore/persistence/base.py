from __future__ import annotations

from ..ports import DomainEvent


def format_document_number(prefix: str, day: str, number: int, pad: int = 4) -> str:
    """INV-20261018-0001 style numbers."""
    return f"{prefix}-{day}-{number:0{pad}d}"


class BaseUnitOfWork:
    """Event buffer shared by both unit implementations; flushed to the publisher after commit."""

    def __init__(self):
        self.events: list[DomainEvent] = []

    def emit(self, event: DomainEvent) -> None:
        self.events.append(event)
