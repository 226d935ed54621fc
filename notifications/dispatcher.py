"""
Notification dispatcher.

After a ticket or comment is created, a notification request is published
to the notifier subject according to the configured policy. Publishing is
best effort: failures are logged and never reach the caller.
"""
import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

from config.config_manager import NotificationConfig
from dispatch.broker import Broker
from models.comment import Comment
from models.ticket import Ticket

NEW_TICKET_MESSAGE = "A new {importance} ticket created for {owner}. Please check the panel."
NEW_TICKET_SUBJECT = "A new {importance} ticket created for {owner}"
NEW_COMMENT_MESSAGE = "A new comment created for ticket with ID: {ticket_id}. Please check the panel."
NEW_COMMENT_SUBJECT = "A new comment created for ticket with ID: {ticket_id}"

DEFAULT_PUBLISH_TIMEOUT_SECONDS = 5.0


def build_notification(policy: NotificationConfig, message: str, subject: str,
                       body: str = "") -> Dict[str, Any]:
    """Assemble the notification request sent to the notifier."""
    return {
        'type': policy.type,
        'message': message,
        'subject': subject,
        'body': body,
        'sender': policy.sender,
        'recipients': list(policy.recipients),
        'cc': list(policy.cc),
        'bcc': list(policy.bcc)
    }


class NotificationDispatcher:
    """Publishes new ticket and new comment notifications."""

    def __init__(self, broker: Broker, policies: Mapping[str, NotificationConfig],
                 subject: str, publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT_SECONDS,
                 logger: Optional[logging.Logger] = None):
        """
        Args:
            broker: Broker used to publish notification requests
            policies: Policies keyed ``ticket.new.<level>`` and ``comment.new``
            subject: Notifier subject to publish to
            publish_timeout: Seconds a publish may take before it is given up
            logger: Logger instance (defaults to the module logger)
        """
        self.broker = broker
        self.policies = dict(policies)
        self.subject = subject
        self.publish_timeout = publish_timeout
        self.logger = logger or logging.getLogger(__name__)

    async def ticket_created(self, ticket: Ticket) -> bool:
        """
        Notify about a new ticket using the policy of its importance level.

        Returns:
            bool: True if a notification was published
        """
        importance = ticket.importance_level.value
        policy = self.policies.get(f"ticket.new.{importance.lower()}")
        if policy is None:
            self.logger.warning(f"No notification policy for {importance} tickets, skipping ticket {ticket.id}")
            return False

        notification = build_notification(
            policy,
            message=NEW_TICKET_MESSAGE.format(importance=importance, owner=ticket.owner),
            subject=NEW_TICKET_SUBJECT.format(importance=importance, owner=ticket.owner)
        )
        return await self._publish(notification, f"ticket {ticket.id}")

    async def comment_created(self, comment: Comment) -> bool:
        """
        Notify about a new comment on a ticket.

        Returns:
            bool: True if a notification was published
        """
        policy = self.policies.get("comment.new")
        if policy is None:
            self.logger.warning(f"No notification policy for comments, skipping comment {comment.id}")
            return False

        notification = build_notification(
            policy,
            message=NEW_COMMENT_MESSAGE.format(ticket_id=comment.ticket_id),
            subject=NEW_COMMENT_SUBJECT.format(ticket_id=comment.ticket_id)
        )
        return await self._publish(notification, f"comment {comment.id}")

    async def _publish(self, notification: Dict[str, Any], about: str) -> bool:
        if not self.subject:
            self.logger.warning(f"Notifier subject not configured, skipping notification for {about}")
            return False

        try:
            await asyncio.wait_for(self.broker.publish_json(self.subject, notification),
                                   timeout=self.publish_timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"Publishing notification for {about} timed out after {self.publish_timeout}s")
            return False
        except Exception as e:
            self.logger.warning(f"Failed to publish notification for {about}: {e}")
            return False

        self.logger.debug(f"Published {notification['type']} notification for {about}")
        return True
