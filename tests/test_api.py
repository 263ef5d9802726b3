"""Tests for the HTTP routes."""

from unittest.mock import patch

from powcaptcha.config import settings
from powcaptcha.services.pow_service import extract_salt_params
from powcaptcha.services.signature_service import create_fields_hash, create_server_signature
from tests.test_utils import DEEPLY_NESTED_PAYLOAD, build_solution, encode_payload


class TestIndex:
    def test_lists_endpoints(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "GET /altcha" in response.text
        assert "POST /submit_spam_filter" in response.text

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestChallenges:
    """Tests for GET /altcha."""

    def test_get_challenge(self, client):
        response = client.get("/altcha")

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"algorithm", "challenge", "maxnumber", "salt", "signature"}
        assert data["algorithm"] == "SHA-256"
        assert data["maxnumber"] == 1000
        assert "expires" in extract_salt_params(data["salt"])

    def test_challenges_are_unique(self, client):
        first = client.get("/altcha").json()
        second = client.get("/altcha").json()

        assert first["salt"] != second["salt"]
        assert first["signature"] != second["signature"]

    def test_ttl_zero_disables_expiry(self, client):
        with patch.object(settings, "altcha_challenge_ttl_seconds", 0):
            data = client.get("/altcha").json()

        assert "?" not in data["salt"]

    def test_configured_algorithm(self, client):
        with patch.object(settings, "altcha_algorithm", "SHA-512"):
            data = client.get("/altcha").json()

        assert data["algorithm"] == "SHA-512"
        assert len(data["challenge"]) == 128

    def test_invalid_configuration_returns_500(self, client):
        with patch.object(settings, "altcha_max_number", 0):
            response = client.get("/altcha")

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to create challenge"


class TestSubmit:
    """Tests for POST /submit."""

    def test_full_flow(self, client):
        challenge = client.get("/altcha").json()
        payload = encode_payload(build_solution(challenge))

        response = client.post("/submit", data={"altcha": payload, "name": "Alice"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["name"] == "Alice"
        assert data["data"]["altcha"] == payload
        assert "verificationData" not in data

    def test_missing_payload(self, client):
        response = client.post("/submit", data={"name": "Alice"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Altcha payload missing"

    def test_wrong_number(self, client):
        challenge = client.get("/altcha").json()
        solution = build_solution(challenge)
        solution["number"] = (solution["number"] + 1) % (challenge["maxnumber"] + 1)

        response = client.post("/submit", data={"altcha": encode_payload(solution)})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Altcha payload"

    def test_challenge_signed_with_other_key(self, client):
        with patch.object(settings, "altcha_hmac_key", "some-other-key"):
            challenge = client.get("/altcha").json()

        payload = encode_payload(build_solution(challenge))
        response = client.post("/submit", data={"altcha": payload})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Altcha payload"

    def test_garbage_payload(self, client):
        response = client.post("/submit", data={"altcha": "not-a-payload"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Altcha payload"

    def test_deeply_nested_payload(self, client):
        response = client.post("/submit", data={"altcha": DEEPLY_NESTED_PAYLOAD})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Altcha payload"


class TestSubmitSpamFilter:
    """Tests for POST /submit_spam_filter."""

    form = {"email": "alice@example.com", "message": "Hello there"}

    def signed(self, hmac_key, classification="GOOD", fields=("email", "message")):
        return create_server_signature(
            {
                "classification": classification,
                "fields": list(fields),
                "fieldsHash": create_fields_hash(self.form, list(fields)),
            },
            hmac_key,
        )

    def test_good_submission(self, client, hmac_key):
        response = client.post(
            "/submit_spam_filter", data=self.form | {"altcha": self.signed(hmac_key)}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"]["email"] == "alice@example.com"
        assert data["verificationData"]["classification"] == "GOOD"
        assert data["verificationData"]["fields"] == ["email", "message"]
        assert "fieldsHash" in data["verificationData"]

    def test_missing_payload(self, client):
        response = client.post("/submit_spam_filter", data=self.form)

        assert response.status_code == 400
        assert response.json()["detail"] == "Altcha payload missing"

    def test_bad_classification_rejected(self, client, hmac_key):
        payload = self.signed(hmac_key, classification="BAD", fields=("email",))

        response = client.post("/submit_spam_filter", data=self.form | {"altcha": payload})

        assert response.status_code == 400
        assert response.json()["detail"] == "Classified as spam"

    def test_changed_message_rejected(self, client, hmac_key):
        data = self.form | {"message": "Buy cheap watches", "altcha": self.signed(hmac_key)}

        response = client.post("/submit_spam_filter", data=data)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid fields hash"

    def test_wrong_key_rejected(self, client):
        payload = self.signed("some-other-key")

        response = client.post("/submit_spam_filter", data=self.form | {"altcha": payload})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Altcha payload"

    def test_pow_solution_is_not_a_server_signature(self, client):
        challenge = client.get("/altcha").json()
        payload = encode_payload(build_solution(challenge))

        response = client.post("/submit_spam_filter", data=self.form | {"altcha": payload})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Altcha payload"

    def test_deeply_nested_payload(self, client):
        response = client.post(
            "/submit_spam_filter", data=self.form | {"altcha": DEEPLY_NESTED_PAYLOAD}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid Altcha payload"

    def test_repeated_field_checks_first_value(self, client, hmac_key):
        data = self.form | {
            "message": ["Hello there", "Buy cheap watches"],
            "altcha": self.signed(hmac_key),
        }

        response = client.post("/submit_spam_filter", data=data)

        assert response.status_code == 200
