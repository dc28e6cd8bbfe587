"""
Unit tests for the order status state machine.
"""

import itertools

import pytest

from rental_engine.schemas.order import OrderStatus
from rental_engine.services.order_state_machine import (
    TransitionContext,
    check_guard,
    format_status_name,
    get_available_statuses,
    validate_transition,
)

# Legal moves written out independently of VALID_TRANSITIONS
LEGAL = {
    ("draft", "pending_review"),
    ("draft", "cancelled"),
    ("draft", "void"),
    ("pending_review", "awaiting_customer_approval"),
    ("pending_review", "cancelled"),
    ("pending_review", "void"),
    ("awaiting_customer_approval", "confirmed"),
    ("awaiting_customer_approval", "pending_review"),
    ("awaiting_customer_approval", "cancelled"),
    ("awaiting_customer_approval", "void"),
    ("confirmed", "setup_in_progress"),
    ("confirmed", "cancelled"),
    ("confirmed", "void"),
    ("setup_in_progress", "on_the_way"),
    ("setup_in_progress", "setup_completed"),
    ("setup_in_progress", "confirmed"),
    ("on_the_way", "setup_completed"),
    ("on_the_way", "setup_in_progress"),
    ("setup_completed", "pickup_in_progress"),
    ("setup_completed", "on_the_way"),
    ("pickup_in_progress", "on_the_way_back"),
    ("pickup_in_progress", "setup_completed"),
    ("on_the_way_back", "completed"),
    ("on_the_way_back", "pickup_in_progress"),
}

ALL_STATUSES = [status.value for status in OrderStatus]
CARD_ON_FILE = TransitionContext(has_payment_method=True, amount_due_cents=500)


class TestValidateTransition:

    @pytest.mark.parametrize("current,requested", list(itertools.product(ALL_STATUSES, repeat=2)))
    def test_adjacency_table(self, current, requested):
        result = validate_transition(current, requested, CARD_ON_FILE)

        expected = current == requested or (current, requested) in LEGAL
        assert result.valid is expected
        if not expected:
            assert result.reason.startswith("Cannot change status")

    @pytest.mark.parametrize("status", ["completed", "cancelled", "void"])
    def test_terminal_states_have_no_targets(self, status):
        result = validate_transition(status, "confirmed", CARD_ON_FILE)

        assert result.valid is False
        assert result.reason.endswith("Allowed: none")

    def test_rejection_lists_legal_targets(self):
        result = validate_transition("draft", "confirmed", CARD_ON_FILE)

        assert "Pending Review" in result.reason
        assert "Cancelled" in result.reason

    def test_unknown_status(self):
        assert validate_transition("shipped", "confirmed").valid is False
        assert validate_transition("draft", "shipped").valid is False

    def test_accepts_enum_members(self):
        assert validate_transition(OrderStatus.DRAFT, OrderStatus.PENDING_REVIEW).valid is True


class TestConfirmGuard:

    def test_amount_due_without_card_rejected(self):
        context = TransitionContext(has_payment_method=False, amount_due_cents=500)

        result = validate_transition("awaiting_customer_approval", "confirmed", context)

        assert result.valid is False
        assert "payment method" in result.reason

    def test_nothing_due_without_card_accepted(self):
        context = TransitionContext(has_payment_method=False, amount_due_cents=0)

        assert validate_transition("awaiting_customer_approval", "confirmed", context).valid is True

    def test_card_on_file_accepted(self):
        assert check_guard(OrderStatus.CONFIRMED, CARD_ON_FILE) is None

    def test_unguarded_status(self):
        assert check_guard(OrderStatus.CANCELLED, TransitionContext(amount_due_cents=500)) is None

    def test_guard_skipped_for_self_transition(self):
        context = TransitionContext(has_payment_method=False, amount_due_cents=500)

        assert validate_transition("confirmed", "confirmed", context).valid is True


class TestHelpers:

    def test_format_status_name(self):
        assert format_status_name("awaiting_customer_approval") == "Awaiting Customer Approval"
        assert format_status_name(OrderStatus.ON_THE_WAY) == "On The Way"

    def test_available_statuses(self):
        assert get_available_statuses("confirmed") == [
            OrderStatus.SETUP_IN_PROGRESS,
            OrderStatus.CANCELLED,
            OrderStatus.VOID,
        ]
        assert get_available_statuses("completed") == []
        assert get_available_statuses("shipped") == []
