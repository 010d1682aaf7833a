"""
Console email provider adapter - Implements EmailProvider protocol.

This module provides a console-based implementation of the domain's
email provider port, logging rendered messages for local development.
"""

import logging
import uuid

from src.domain.models import EmailMessage

logger = logging.getLogger(__name__)


class ConsoleEmailProvider:
    """
    Implements EmailProvider protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - nothing leaves the process.
    """

    def send(self, message: EmailMessage) -> str:
        """
        Log the message to console (simulates email delivery).

        The subject and recipient are logged at INFO level to be visible in
        docker-compose logs; the body is logged at DEBUG.

        Args:
            message: Rendered message

        Returns:
            Locally generated message id
        """
        message_id = f"console-{uuid.uuid4()}"
        logger.info("[EMAIL] To: %s Subject: %s Id: %s", message.to, message.subject, message_id)
        logger.debug("[EMAIL] Body for %s:\n%s", message_id, message.text)
        return message_id
