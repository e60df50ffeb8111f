"""LoggingNotifier — default NotifierProtocol implementation.

Delivery is owned by an external service; until one is wired in, messages are
written to the log so operators can see what would have been sent.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class LoggingNotifier:
    async def send(self, user_id: str, template: str, context: dict[str, Any]) -> None:
        logger.info("Notification: user=%s template=%s context=%s", user_id, template, context)
