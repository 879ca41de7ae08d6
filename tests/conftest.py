import pytest
from fastapi.testclient import TestClient

from permitvault import (
    AuthorizationAuthority,
    CustodyVault,
    InMemoryEventLog,
    Runtime,
    create_request,
    generate_authority_key,
    sign_request,
)
from permitvault.service import create_app

VAULT_HEX = "0x" + "00" * 31 + "01"
RECIPIENT_HEX = "0x" + "00" * 31 + "0a"
NETWORK = 1


@pytest.fixture
def key_pair():
    return generate_authority_key("service-tests")


@pytest.fixture
def wired(key_pair):
    runtime = Runtime(NETWORK)
    events = InMemoryEventLog()
    authority = AuthorizationAuthority(runtime, events=events, identity=key_pair.identity)
    vault = CustodyVault(VAULT_HEX, authority, runtime, events=events)
    return vault, authority, events


@pytest.fixture
def client(wired):
    vault, authority, events = wired
    return TestClient(create_app(vault, authority, events=events))


@pytest.fixture
def sign(key_pair):
    """Return a helper producing base64 signatures for (recipient, amount, nonce)."""
    import base64

    def _sign(recipient=RECIPIENT_HEX, amount=40, nonce=1, network=NETWORK, vault=VAULT_HEX):
        request = create_request(vault, recipient, amount, nonce, network)
        return base64.b64encode(sign_request(request, key_pair.signing_key)).decode("ascii")

    return _sign
