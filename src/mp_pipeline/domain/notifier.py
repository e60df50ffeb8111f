"""Outbound notification capability (email/push delivery is external)."""

from typing import Any, Protocol


class NotifierProtocol(Protocol):
    async def send(self, user_id: str, template: str, context: dict[str, Any]) -> None: ...


# Templates understood by the delivery service
CONFIRMATION_REQUESTED = "confirmation_requested"
CONFIRMATION_REMINDER = "confirmation_reminder"
CYCLE_SUMMARY = "cycle_summary"
