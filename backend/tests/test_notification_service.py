"""
Unit tests for OrderNotificationService.
"""

import uuid
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from rental_engine.core.config import settings
from rental_engine.core.exceptions import ExternalServiceError
from rental_engine.services.notification_service import Contact, OrderNotificationService

ORDER_ID = uuid.UUID("3f2a9c1e-0000-4000-8000-000000000001")
CONTACT = Contact(name="Jane Doe", email="jane@example.com")


@pytest.fixture
def notifier():
    notifier = AsyncMock()
    notifier.notify = AsyncMock()
    return notifier


@pytest.fixture
def service(notifier):
    return OrderNotificationService(notifier=notifier)


class TestReviewMessage:

    def test_message_contents(self, service):
        message = service.build_review_message(CONTACT, ORDER_ID, date(2026, 7, 11))

        assert message.startswith("Hi Jane Doe, we made some changes to your booking #3F2A9C1E for July 11, 2026.")
        assert message.endswith(f"{settings.customer_portal_url}/{ORDER_ID}")

    def test_message_without_date(self, service):
        message = service.build_review_message(CONTACT, ORDER_ID)

        assert "booking #3F2A9C1E." in message


class TestSendChangeReviewRequest:

    async def test_sent(self, service, notifier):
        assert await service.send_change_review_request(CONTACT, ORDER_ID) is True

        contact, message = notifier.notify.await_args.args
        assert contact == CONTACT
        assert "Please review and approve" in message

    async def test_no_contact(self, service, notifier):
        assert await service.send_change_review_request(Contact(name="Jane Doe"), ORDER_ID) is False
        assert await service.send_change_review_request(None, ORDER_ID) is False
        notifier.notify.assert_not_awaited()

    async def test_delivery_failure_is_reported(self, service, notifier):
        notifier.notify.side_effect = ExternalServiceError("SMS gateway timeout")

        assert await service.send_change_review_request(CONTACT, ORDER_ID) is False

    async def test_disabled(self, service, notifier):
        disabled = settings.model_copy(update={"notifications_enabled": False})

        with patch("rental_engine.services.notification_service.settings", disabled):
            assert await service.send_change_review_request(CONTACT, ORDER_ID) is False

        notifier.notify.assert_not_awaited()
