import secrets
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from powcaptcha.config import settings
from powcaptcha.main import app


@pytest.fixture
def hmac_key():
    """A fresh signing key per test, so no test depends on the process key."""
    return secrets.token_hex(16)


@pytest.fixture
def client(hmac_key):
    """Test client whose routes sign and verify with ``hmac_key``."""
    with (
        patch.object(settings, "altcha_hmac_key", hmac_key),
        # Keep brute-force solving in tests fast
        patch.object(settings, "altcha_max_number", 1000),
    ):
        with TestClient(app) as test_client:
            yield test_client
