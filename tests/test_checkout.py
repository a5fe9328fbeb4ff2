"""Tests for checkout from a stored quote (mocked storage)."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from helpers import make_quote, mock_txn_for
from stayline.domain.checkout import checkout_quote
from stayline.domain.errors import AvailabilityConflictError, ExpiredQuoteError, ValidationError


def _stored_quote() -> dict:
    return {"id": "q1", "property_id": "p1", "quote": make_quote()}


def _availability(room_free: bool = True) -> MagicMock:
    availability = MagicMock()
    availability.is_room_available.return_value = room_free
    return availability


class TestCheckoutQuote:
    def test_external_payment_leaves_booking_pending(self, service_ctx, mock_cur):
        with patch("stayline.domain.checkout.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.checkout.load_quote", return_value=_stored_quote()), \
             patch("stayline.domain.checkout.get_availability", return_value=_availability()), \
             patch("stayline.domain.checkout.insert_booking", return_value="b1") as mock_booking, \
             patch("stayline.domain.checkout.insert_payment_session", return_value="ps-1") as mock_session, \
             patch("stayline.domain.checkout.finalize_booking") as mock_finalize:
            result = checkout_quote(service_ctx, "q1", guest_name=" Ana ", guest_email="ana@example.com")

        assert result == {
            "booking_id": "b1",
            "payment_session_id": "ps-1",
            "provider": "external",
            "status": "pending_payment",
            "amount": Decimal("220.00"),
            "currency": "USD",
        }
        kwargs = mock_booking.call_args.kwargs
        assert kwargs["status"] == "pending_payment"
        assert kwargs["source"] == "direct"
        assert kwargs["guest_name"] == "Ana"
        assert kwargs["quote_payload"]["room_id"] == "r1"
        assert mock_session.call_args.kwargs["amount"] == Decimal("220.00")
        mock_finalize.assert_not_called()

    def test_pay_at_property_confirms_immediately(self, service_ctx, mock_cur):
        with patch("stayline.domain.checkout.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.checkout.load_quote", return_value=_stored_quote()), \
             patch("stayline.domain.checkout.get_availability", return_value=_availability()), \
             patch("stayline.domain.checkout.insert_booking", return_value="b1") as mock_booking, \
             patch("stayline.domain.checkout.insert_payment_session", return_value="ps-1") as mock_session, \
             patch("stayline.domain.checkout.finalize_booking") as mock_finalize:
            result = checkout_quote(service_ctx, "q1", guest_name="Ana", pay_at_property=True)

        assert result["status"] == "confirmed"
        assert result["provider"] == "property"
        assert mock_booking.call_args.kwargs["status"] == "hold"
        assert mock_session.call_args.kwargs["provider"] == "property"
        mock_finalize.assert_called_once_with("b1", "ps-1")

    def test_failed_finalize_releases_hold(self, service_ctx, mock_cur):
        with patch("stayline.domain.checkout.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.checkout.load_quote", return_value=_stored_quote()), \
             patch("stayline.domain.checkout.get_availability", return_value=_availability()), \
             patch("stayline.domain.checkout.insert_booking", return_value="b1"), \
             patch("stayline.domain.checkout.insert_payment_session", return_value="ps-1"), \
             patch(
                 "stayline.domain.checkout.finalize_booking",
                 side_effect=psycopg2.OperationalError("lock timeout"),
             ), \
             patch("stayline.domain.checkout.get_booking", return_value={"id": "b1", "status": "hold"}), \
             patch("stayline.domain.checkout.update_booking_status") as mock_status, \
             patch("stayline.domain.checkout.mark_payment_sessions") as mock_sessions:
            with pytest.raises(psycopg2.OperationalError):
                checkout_quote(service_ctx, "q1", guest_name="Ana", pay_at_property=True)

        mock_status.assert_called_once_with(mock_cur, booking_id="b1", status="cancelled")
        mock_sessions.assert_called_once_with(
            mock_cur, booking_id="b1", status="failed", payment_session_id="ps-1"
        )

    def test_failed_finalize_leaves_confirmed_booking(self, service_ctx, mock_cur):
        with patch("stayline.domain.checkout.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.checkout.load_quote", return_value=_stored_quote()), \
             patch("stayline.domain.checkout.get_availability", return_value=_availability()), \
             patch("stayline.domain.checkout.insert_booking", return_value="b1"), \
             patch("stayline.domain.checkout.insert_payment_session", return_value="ps-1"), \
             patch("stayline.domain.checkout.finalize_booking", side_effect=RuntimeError("log sink down")), \
             patch("stayline.domain.checkout.get_booking", return_value={"id": "b1", "status": "confirmed"}), \
             patch("stayline.domain.checkout.update_booking_status") as mock_status:
            with pytest.raises(RuntimeError):
                checkout_quote(service_ctx, "q1", guest_name="Ana", pay_at_property=True)

        mock_status.assert_not_called()

    def test_finalize_conflict_not_compensated_twice(self, service_ctx, mock_cur):
        with patch("stayline.domain.checkout.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.checkout.load_quote", return_value=_stored_quote()), \
             patch("stayline.domain.checkout.get_availability", return_value=_availability()), \
             patch("stayline.domain.checkout.insert_booking", return_value="b1"), \
             patch("stayline.domain.checkout.insert_payment_session", return_value="ps-1"), \
             patch(
                 "stayline.domain.checkout.finalize_booking",
                 side_effect=AvailabilityConflictError("availability_conflict"),
             ), \
             patch("stayline.domain.checkout.get_booking") as mock_get:
            with pytest.raises(AvailabilityConflictError):
                checkout_quote(service_ctx, "q1", guest_name="Ana", pay_at_property=True)

        mock_get.assert_not_called()

    def test_room_taken_since_quote(self, service_ctx, mock_cur):
        with patch("stayline.domain.checkout.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.checkout.load_quote", return_value=_stored_quote()), \
             patch("stayline.domain.checkout.get_availability", return_value=_availability(False)), \
             patch("stayline.domain.checkout.insert_booking") as mock_booking:
            with pytest.raises(AvailabilityConflictError) as exc_info:
                checkout_quote(service_ctx, "q1", guest_name="Ana")

        assert exc_info.value.reason_code == "room_unavailable"
        mock_booking.assert_not_called()

    def test_expired_quote_propagates(self, service_ctx, mock_cur):
        with patch("stayline.domain.checkout.txn", mock_txn_for(mock_cur)), \
             patch("stayline.domain.checkout.load_quote", side_effect=ExpiredQuoteError("quote_expired")), \
             patch("stayline.domain.checkout.insert_booking") as mock_booking:
            with pytest.raises(ExpiredQuoteError):
                checkout_quote(service_ctx, "q1", guest_name="Ana")
        mock_booking.assert_not_called()

    def test_guest_name_required(self, service_ctx):
        with patch("stayline.domain.checkout.txn") as mock_txn:
            with pytest.raises(ValidationError) as exc_info:
                checkout_quote(service_ctx, "q1", guest_name="")
        assert exc_info.value.reason_code == "guest_name_required"
        mock_txn.assert_not_called()
