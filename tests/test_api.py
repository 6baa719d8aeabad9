"""
HTTP tests for the API.

The app is built with a throwaway repository, a scripted inference client
and a mocked billing service, so no external call is ever made.
"""

import base64
import json
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from autoguardian.api.app import create_app
from autoguardian.config.loader import AppConfig
from autoguardian.core.errors import (
    BillingError,
    ProviderBusy,
    ProviderConfigError,
    ProviderError,
)
from autoguardian.core.usage_gate import Tier
from autoguardian.storage.models import ConsultationRecord

from .fakes import SAMPLE_DIAGNOSIS, SAMPLE_OBD_RESULT, SAMPLE_QUOTE_RESULT, FakeInferenceClient

CAMRY_BODY = {
    "vehicle": {"year": 2019, "make": "Toyota", "model": "Camry", "mileage": 62000},
    "description": "Car makes a grinding noise when braking at low speed, worsening over a week.",
}
OBD_BODY = {"code": "P0420", "vehicle": {"make": "Honda", "model": "Civic", "year": 2015}}
QUOTE_TEXT_BODY = {
    "vehicle": {"make": "Ford", "model": "F-150", "year": 2018},
    "type": "text",
    "quoteText": "Front brake pads and rotors: $480",
}
QUOTE_IMAGE_BODY = {
    "vehicle": {"make": "Ford", "model": "F-150", "year": 2018},
    "type": "image",
    "image": base64.b64encode(b"fake jpeg bytes").decode("ascii"),
    "mimeType": "image/jpeg",
}

ANALYSIS_CALLS = [
    ("/api/analyze/symptom", CAMRY_BODY),
    ("/api/obd", OBD_BODY),
    ("/api/quote", QUOTE_TEXT_BODY),
]


@pytest.fixture
def billing():
    return Mock()


@pytest.fixture
def api(repository, fake_client, billing):
    app = create_app(
        AppConfig(),
        repository=repository,
        inference_client=fake_client,
        billing_service=billing,
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def owner(repository):
    return repository.create_profile("owner@example.com")


@pytest.fixture
def auth(owner):
    return {"Authorization": f"Bearer {owner.access_token}"}


def _add_consultations(repository, user_id, count):
    for _ in range(count):
        repository.insert_record(ConsultationRecord(
            user_id=user_id,
            result=SAMPLE_DIAGNOSIS,
            vehicle_make="Toyota",
            vehicle_model="Camry",
            vehicle_year=2019,
            vehicle_mileage=45000,
            description="Grinding noise when braking",
        ))


class TestHealth:
    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAuthentication:
    """Every analysis endpoint rejects anonymous callers before doing any work."""

    @pytest.mark.parametrize("path, body", ANALYSIS_CALLS)
    def test_missing_token(self, api, fake_client, path, body):
        response = api.post(path, json=body)

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert "sign in" in response.json()["error"]
        assert fake_client.calls == []

    @pytest.mark.parametrize("path, body", ANALYSIS_CALLS)
    def test_unknown_token(self, api, fake_client, path, body):
        response = api.post(path, json=body, headers={"Authorization": "Bearer not-a-real-token"})

        assert response.status_code == 401
        assert fake_client.calls == []

    def test_malformed_body_without_token_is_still_401(self, api):
        response = api.post(
            "/api/analyze/symptom",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 401

    def test_sign_in_messages(self, api):
        assert api.post("/api/analyze/symptom", json={}).json()["error"] == (
            "Please sign in to use the symptom analyzer."
        )
        assert api.post("/api/obd", json={}).json()["error"] == "Please sign in to use the OBD lookup."
        assert api.post("/api/quote", json={}).json()["error"] == (
            "Please sign in to use the quote checker."
        )


class TestSymptomEndpoint:
    """POST /api/analyze/symptom."""

    def test_camry_scenario(self, api, auth, repository, owner):
        response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["remainingConsultations"] == 2
        assert len(body["diagnosis"]["likelyCauses"]) >= 1

        records = repository.fetch_recent_records("consultations", owner.user_id)
        assert len(records) == 1
        assert records[0]["severity"] == "soon"

    def test_short_description(self, api, auth, fake_client):
        body = dict(CAMRY_BODY, description="noise")
        response = api.post("/api/analyze/symptom", json=body, headers=auth)

        assert response.status_code == 400
        assert "at least 10 characters" in response.json()["error"]
        assert fake_client.calls == []

    def test_malformed_json(self, api, auth, fake_client):
        response = api.post(
            "/api/analyze/symptom",
            content="{not json",
            headers=dict(auth, **{"Content-Type": "application/json"}),
        )

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert fake_client.calls == []

    def test_deeply_nested_body(self, api, auth, fake_client):
        response = api.post(
            "/api/analyze/symptom",
            content="[" * 200000,
            headers=dict(auth, **{"Content-Type": "application/json"}),
        )

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Request body must be a JSON object.",
        }
        assert fake_client.calls == []

    def test_nan_in_model_output(self, api, auth, fake_client, repository, owner):
        fake_client.response = (
            '{"likelyCauses": [{"cause": "pads", "confidence": NaN}], '
            '"urgency": {"level": "soon"}}'
        )

        response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "Failed to parse diagnostic response. Please try again.",
        }
        assert repository.fetch_recent_records("consultations", owner.user_id) == []

    def test_free_tier_limit(self, api, auth, repository, owner, fake_client):
        _add_consultations(repository, owner.user_id, 3)

        response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 429
        body = response.json()
        assert body["success"] is False
        assert body["remainingConsultations"] == 0
        assert "free tier limit of 3" in body["error"]
        assert fake_client.calls == []

    def test_pro_tier_unlimited(self, api, auth, repository, owner):
        repository.set_tier(owner.user_id, Tier.PRO)
        _add_consultations(repository, owner.user_id, 10)

        response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 200
        assert response.json()["remainingConsultations"] is None

    def test_fenced_model_output(self, api, auth, fake_client):
        fake_client.response = f"```json\n{json.dumps(SAMPLE_DIAGNOSIS)}\n```"

        response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 200
        assert response.json()["diagnosis"] == SAMPLE_DIAGNOSIS

    def test_unparseable_model_output(self, api, auth, fake_client, repository, owner):
        fake_client.response = "I think it's the brakes."

        response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "Failed to parse diagnostic response. Please try again.",
        }
        assert repository.fetch_recent_records("consultations", owner.user_id) == []

    def test_persistence_failure_still_returns_diagnosis(self, api, auth, repository):
        with patch.object(repository, "insert_record", side_effect=RuntimeError("disk full")):
            response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 200
        assert response.json()["diagnosis"] == SAMPLE_DIAGNOSIS

    def test_usage_lookup_failure(self, api, auth, repository, fake_client):
        with patch.object(repository, "count_consultations_since", side_effect=RuntimeError("locked")):
            response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 500
        assert response.json()["error"] == "Unable to verify your usage. Please try again."
        assert fake_client.calls == []

    def test_unexpected_error(self, api, auth, fake_client):
        fake_client.error = KeyError("boom")

        response = api.post("/api/analyze/symptom", json=CAMRY_BODY, headers=auth)

        assert response.status_code == 500
        assert response.json()["error"] == "An unexpected error occurred. Please try again."


class TestProviderErrors:
    """Provider failures map to the same status on every endpoint."""

    @pytest.mark.parametrize("path, body", ANALYSIS_CALLS)
    def test_rate_limit_is_503(self, api, auth, fake_client, path, body):
        fake_client.error = ProviderBusy()

        response = api.post(path, json=body, headers=auth)

        assert response.status_code == 503
        assert response.json() == {
            "success": False,
            "error": "Our diagnostic service is temporarily busy. Please try again in a moment.",
        }

    @pytest.mark.parametrize("error", [ProviderConfigError(), ProviderError()])
    @pytest.mark.parametrize("path, body", ANALYSIS_CALLS)
    def test_other_provider_errors_are_500(self, api, auth, fake_client, path, body, error):
        fake_client.error = error

        response = api.post(path, json=body, headers=auth)

        assert response.status_code == 500
        assert response.json()["error"] == error.message


class TestObdEndpoint:
    """POST /api/obd."""

    @pytest.mark.parametrize("code", ["P042", "X0420", "P04200", ""])
    def test_invalid_code(self, api, auth, fake_client, code):
        response = api.post("/api/obd", json=dict(OBD_BODY, code=code), headers=auth)

        assert response.status_code == 400
        assert fake_client.calls == []

    def test_lookup(self, api, auth, fake_client):
        fake_client.response = json.dumps(SAMPLE_OBD_RESULT)

        response = api.post("/api/obd", json=dict(OBD_BODY, code="p0420"), headers=auth)

        assert response.status_code == 200
        assert response.json() == {"success": True, "result": SAMPLE_OBD_RESULT}
        prompt, _ = fake_client.calls[0]
        assert "OBD-II Code: P0420" in prompt.text

    def test_not_metered(self, api, auth, repository, owner, fake_client):
        _add_consultations(repository, owner.user_id, 3)
        fake_client.response = json.dumps(SAMPLE_OBD_RESULT)

        response = api.post("/api/obd", json=OBD_BODY, headers=auth)

        assert response.status_code == 200
        assert "remainingConsultations" not in response.json()


class TestQuoteEndpoint:
    """POST /api/quote."""

    def test_text_quote(self, api, auth, fake_client, repository, owner):
        fake_client.response = json.dumps(SAMPLE_QUOTE_RESULT)

        response = api.post("/api/quote", json=QUOTE_TEXT_BODY, headers=auth)

        assert response.status_code == 200
        assert response.json()["result"]["overallVerdict"] == "fair"
        records = repository.fetch_recent_records("quote_checks", owner.user_id)
        assert records[0]["input_type"] == "text"

    def test_image_quote(self, api, auth, fake_client):
        fake_client.response = json.dumps(SAMPLE_QUOTE_RESULT)

        response = api.post("/api/quote", json=QUOTE_IMAGE_BODY, headers=auth)

        assert response.status_code == 200
        prompt, max_tokens = fake_client.calls[0]
        assert prompt.image.mime_type == "image/jpeg"
        assert max_tokens == 3000

    def test_missing_quote(self, api, auth, fake_client):
        body = {"vehicle": QUOTE_TEXT_BODY["vehicle"], "type": "text"}

        response = api.post("/api/quote", json=body, headers=auth)

        assert response.status_code == 400
        assert response.json()["error"] == "Please provide a quote (text or image)."
        assert fake_client.calls == []


class TestWaitlistEndpoint:
    """POST /api/waitlist."""

    def test_join(self, api):
        response = api.post("/api/waitlist", json={"email": " New@Example.com "})

        assert response.status_code == 201
        assert response.json()["message"] == "Successfully joined waitlist!"
        assert response.json()["data"]["email"] == "new@example.com"

    def test_duplicate(self, api):
        api.post("/api/waitlist", json={"email": "new@example.com"})
        response = api.post("/api/waitlist", json={"email": "NEW@example.com"})

        assert response.status_code == 409
        assert response.json() == {"error": "You're already on the waitlist!"}

    @pytest.mark.parametrize("body, error", [
        ({}, "Email is required"),
        ({"email": 42}, "Email is required"),
        ({"email": "not-an-email"}, "Please enter a valid email address"),
    ])
    def test_invalid(self, api, body, error):
        response = api.post("/api/waitlist", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": error}


class TestHistoryEndpoint:
    """GET /api/history/{kind}."""

    def test_requires_sign_in(self, api):
        assert api.get("/api/history/consultations").status_code == 401

    def test_unknown_kind(self, api, auth):
        assert api.get("/api/history/profiles", headers=auth).status_code == 400

    def test_lists_own_records(self, api, auth, repository, owner):
        other = repository.create_profile("other@example.com")
        _add_consultations(repository, owner.user_id, 2)
        _add_consultations(repository, other.user_id, 1)

        response = api.get("/api/history/consultations?limit=5", headers=auth)

        assert response.status_code == 200
        records = response.json()["records"]
        assert len(records) == 2
        assert all(r["user_id"] == owner.user_id for r in records)
        assert records[0]["result"] == SAMPLE_DIAGNOSIS


class TestBillingEndpoints:
    """Stripe routes delegate to the billing service."""

    def test_checkout_requires_sign_in(self, api, billing):
        response = api.post("/api/stripe/checkout", json={"plan": "pro"})

        assert response.status_code == 401
        billing.create_checkout_session.assert_not_called()

    def test_checkout(self, api, auth, billing, owner):
        billing.create_checkout_session.return_value = "https://checkout.stripe.com/c/pay/cs_test"

        response = api.post(
            "/api/stripe/checkout",
            json={"plan": "pro", "annual": True},
            headers=dict(auth, Origin="https://app.example.com"),
        )

        assert response.status_code == 200
        assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test"}
        args, kwargs = billing.create_checkout_session.call_args
        assert args[0].user_id == owner.user_id
        assert args[1] == "pro"
        assert kwargs == {"annual": True, "origin": "https://app.example.com"}

    def test_checkout_invalid_plan(self, api, auth, billing):
        billing.create_checkout_session.side_effect = BillingError("Invalid plan selected.", status_code=400)

        response = api.post("/api/stripe/checkout", json={"plan": "gold"}, headers=auth)

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid plan selected."}

    def test_portal(self, api, auth, billing):
        billing.create_portal_session.return_value = "https://billing.stripe.com/p/session"

        response = api.post("/api/stripe/portal", headers=auth)

        assert response.status_code == 200
        assert response.json() == {"url": "https://billing.stripe.com/p/session"}

    def test_portal_requires_sign_in(self, api):
        assert api.post("/api/stripe/portal").status_code == 401

    def test_webhook(self, api, billing):
        billing.handle_webhook.return_value = "checkout.session.completed"

        response = api.post(
            "/api/stripe/webhook",
            content=b'{"id": "evt_1"}',
            headers={"stripe-signature": "t=1,v1=abc"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        billing.handle_webhook.assert_called_once_with(b'{"id": "evt_1"}', "t=1,v1=abc")

    def test_webhook_bad_signature(self, api, billing):
        billing.handle_webhook.side_effect = BillingError("Invalid signature", status_code=400)

        response = api.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "bad"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}
