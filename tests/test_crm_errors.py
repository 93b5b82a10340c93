"""Tests for CRM error classification and property encoding helpers."""

from __future__ import annotations

import httpx
import pytest

from src.contact_hub.crm.errors import (
    CallTimeoutError,
    ContactNotFoundError,
    CredentialError,
    MalformedResponseError,
    PermanentRemoteError,
    TransientRemoteError,
    error_for_status,
    is_retryable_error,
)
from src.contact_hub.crm.properties import (
    build_contact_properties,
    build_deal_properties,
    split_full_name,
    to_flat_properties,
)
from src.contact_hub.crm.schemas import ContactPayload, DealPayload


# ── Status Mapping ───────────────────────────────────────────────────────────


class TestErrorForStatus:
    @pytest.mark.parametrize("status_code", [429, 500, 502, 503, 504])
    def test_retryable_statuses_are_transient(self, status_code):
        exc = error_for_status(status_code, "try later")
        assert isinstance(exc, TransientRemoteError)
        assert is_retryable_error(exc)

    @pytest.mark.parametrize("status_code", [400, 403, 404, 409])
    def test_client_errors_are_permanent(self, status_code):
        exc = error_for_status(status_code, "rejected")
        assert isinstance(exc, PermanentRemoteError)
        assert not is_retryable_error(exc)

    def test_401_is_credential_error(self):
        exc = error_for_status(401, "Authentication credentials not found")
        assert isinstance(exc, CredentialError)
        assert not is_retryable_error(exc)
        assert "401" in str(exc)

    def test_message_includes_status_and_remote_text(self):
        exc = error_for_status(400, "Property values were not valid")
        assert str(exc) == "HubSpot API error 400: Property values were not valid"
        assert exc.status_code == 400
        assert exc.remote_message == "Property values were not valid"


# ── Classification ───────────────────────────────────────────────────────────


class TestIsRetryableError:
    @pytest.mark.parametrize(
        "message",
        [
            "connect ECONNREFUSED 10.0.0.1:443",
            "getaddrinfo ENOTFOUND api.hubapi.com",
            "read ETIMEDOUT",
            "Request timeout after 10000ms",
            "upstream returned 503",
        ],
    )
    def test_retryable_messages(self, message):
        assert is_retryable_error(RuntimeError(message))

    def test_plain_errors_are_not_retryable(self):
        assert not is_retryable_error(RuntimeError("invalid property name"))

    def test_own_timeout_is_retryable(self):
        exc = CallTimeoutError(10000)
        assert str(exc) == "Request timeout after 10000ms"
        assert is_retryable_error(exc)

    def test_httpx_transport_errors_are_retryable(self):
        assert is_retryable_error(httpx.ReadTimeout("read timed out"))
        assert is_retryable_error(httpx.ConnectError("connection failed"))

    def test_malformed_and_not_found_are_not_retryable(self):
        assert not is_retryable_error(MalformedResponseError("Missing 'id' in 500 payload"))
        assert not is_retryable_error(ContactNotFoundError("jane@example.com"))

    def test_missing_credential_names_the_setting(self):
        exc = CredentialError.missing()
        assert "HUBSPOT_API_KEY" in str(exc)
        assert exc.status_code is None


# ── Property Encoding ────────────────────────────────────────────────────────


class TestProperties:
    def test_contact_defaults(self):
        pairs = build_contact_properties(ContactPayload(email="jane@example.com"))
        assert to_flat_properties(pairs) == {
            "email": "jane@example.com",
            "firstname": "",
            "lastname": "",
            "company": "",
            "lifecyclestage": "subscriber",
            "hs_lead_status": "NEW",
        }

    def test_custom_fields_are_appended_and_win(self):
        contact = ContactPayload(
            email="jane@example.com",
            first_name="Jane",
            lifecycle_stage="lead",
            custom_fields={"hs_message": "hi", "hs_lead_status": "OPEN"},
        )
        flat = to_flat_properties(build_contact_properties(contact))
        assert flat["firstname"] == "Jane"
        assert flat["lifecyclestage"] == "lead"
        assert flat["hs_message"] == "hi"
        assert flat["hs_lead_status"] == "OPEN"

    def test_deal_defaults(self):
        flat = to_flat_properties(
            build_deal_properties(DealPayload(contact_email="jane@example.com", deal_name="Pilot"))
        )
        assert flat == {"dealname": "Pilot", "dealstage": "appointmentscheduled", "amount": "0"}

    def test_deal_amount_formatting(self):
        whole = build_deal_properties(
            DealPayload(contact_email="a@b.co", deal_name="X", amount=10000.0)
        )
        fractional = build_deal_properties(
            DealPayload(contact_email="a@b.co", deal_name="X", amount=99.5)
        )
        assert dict(whole)["amount"] == "10000"
        assert dict(fractional)["amount"] == "99.5"

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("Jane Roe", ("Jane", "Roe")),
            ("  Ana   de la Cruz ", ("Ana", "de la Cruz")),
            ("Prince", ("Prince", "")),
            ("", ("", "")),
        ],
    )
    def test_split_full_name(self, name, expected):
        assert split_full_name(name) == expected
