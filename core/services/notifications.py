"""
Outbound account notifications.

Delivery (e-mail, SMS) is handled outside this service; the default
notifier records that a message was dispatched and, with ``DEBUG`` on,
logs the token itself so it can be used during local development.
"""
import logging

from django.conf import settings

logger = logging.getLogger(__name__)


class LoggingNotifier:
    def send_password_reset(self, user, token: str) -> None:
        logger.info("Password reset requested for user %s", user.username)
        if settings.DEBUG:
            logger.debug("Password reset token for %s: %s", user.email, token)

    def send_email_confirmation(self, user, token: str) -> None:
        logger.info("Email confirmation issued for user %s", user.username)
        if settings.DEBUG:
            logger.debug("Email confirmation token for %s (id=%s): %s", user.email, user.pk, token)
