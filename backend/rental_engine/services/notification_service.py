"""
Customer notifications
Project: Rental Order Engine

The engine only decides when a customer must be told about changes.
Delivery goes through a Notifier; the default one writes to the log.
"""

import datetime
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from rental_engine.core.config import settings
from rental_engine.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")


@dataclass(frozen=True)
class Contact:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class Notifier:
    """Delivery channel. Implementations raise ExternalServiceError on failure."""

    async def notify(self, contact: Contact, message: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    async def notify(self, contact: Contact, message: str) -> None:
        logger.info("Notification to %s <%s>: %s", contact.name, contact.email or contact.phone, message)


class OrderNotificationService:
    """Composes order notifications and hands them to the notifier."""

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self.notifier = notifier or LoggingNotifier()
        self.env = Environment(loader=FileSystemLoader(TEMPLATES_DIR), undefined=StrictUndefined)

    @staticmethod
    def review_link(order_id: uuid.UUID) -> str:
        return f"{settings.customer_portal_url}/{order_id}"

    def build_review_message(
        self,
        contact: Contact,
        order_id: uuid.UUID,
        event_date: Optional[datetime.date] = None,
    ) -> str:
        template = self.env.get_template("change_review_request.txt")
        return template.render(
            name=contact.name,
            reference=str(order_id)[:8].upper(),
            event_date=event_date.strftime("%B %d, %Y") if event_date else None,
            link=self.review_link(order_id),
        ).strip()

    async def send_change_review_request(
        self,
        contact: Optional[Contact],
        order_id: uuid.UUID,
        event_date: Optional[datetime.date] = None,
    ) -> bool:
        """
        Ask the customer to review changes to the order.

        Never raises: a failed delivery is logged and reported as False,
        the order changes stay saved.
        """
        if not settings.notifications_enabled:
            logger.info("Notifications disabled, skipping review request for order %s", order_id)
            return False
        if contact is None or not (contact.email or contact.phone):
            logger.warning("Order %s has no customer contact, review request not sent", order_id)
            return False

        try:
            await self.notifier.notify(contact, self.build_review_message(contact, order_id, event_date))
        except ExternalServiceError as e:
            logger.error("Review request for order %s failed: %s", order_id, e.detail)
            return False
        except OSError as e:
            logger.error("Review request for order %s failed: %s", order_id, e)
            return False

        logger.info("Review request sent for order %s", order_id)
        return True
