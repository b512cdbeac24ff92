"""Outbound email delivery.

No provider is wired in yet: messages are logged, which is what local runs and
the communications worker's tests rely on.
"""

from typing import Optional

from libs.common.logging import get_logger

logger = get_logger(__name__)


async def send_email(
    to_email: str,
    subject: str,
    body: str,
    html_body: Optional[str] = None,
) -> bool:
    """
    Mock email sender.
    In production, this would hand the message to an SMTP relay or provider API.
    """
    logger.info("========== MOCK EMAIL ==========")
    logger.info("To: %s", to_email)
    logger.info("Subject: %s", subject)
    logger.info("Body: %s", body)
    if html_body:
        logger.debug("HTML body: %d chars", len(html_body))
    logger.info("================================")

    return True
