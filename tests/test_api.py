# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from anchor.api.app import create_app
from anchor.service import AnchorService
from anchor.storage import MemoryRateLimiter

from conftest import FP_A, TX_X, FakeLedger


@pytest.fixture
def fake():
    return FakeLedger()


@pytest.fixture
def client(config, fake):
    service = AnchorService(config, ledger_factory=lambda cfg: fake, sleep=lambda s: None)
    app = create_app(config, service=service, rate_limiter=MemoryRateLimiter(100, 60))
    return TestClient(app)


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert resp.headers["cache-control"] == "no-store"


def test_register_then_verify(client, fake):
    resp = client.post("/api/register", json={"fingerprint": FP_A})
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["statusCode"] == "CONFIRMED"
    assert body["confirmedAtUnix"] > 0
    assert body["submission"]["txRef"].startswith("0x")
    assert fake.closed

    again = client.post("/api/register", json={"hash": FP_A}).json()
    assert again["statusCode"] == "CONFIRMED"
    assert again["confirmedAtUnix"] == body["confirmedAtUnix"]
    assert fake.writes == 1

    verified = client.post("/api/verify", json={"fingerprint": FP_A}).json()
    assert verified["statusCode"] == "CONFIRMED"
    assert verified["evidence"]["observedBlockNumber"] == fake.block


def test_verify_unseen_is_not_confirmed(client):
    body = client.get("/api/verify", params={"fingerprint": FP_A}).json()
    assert body["ok"] is True
    assert body["statusCode"] == "NOT_CONFIRMED"
    assert body["confirmedAtUnix"] is None


def test_verify_with_pending_submission(client, fake):
    fake.txs[TX_X] = "pending"
    body = client.post("/api/verify", json={"fingerprint": FP_A, "submissionRef": TX_X}).json()
    assert body["statusCode"] == "SUBMITTED_UNCONFIRMED"
    assert body["submissionStatus"]["pending"] is True


def test_verify_ledger_unreachable(client, fake):
    fake.unreachable = True
    resp = client.post("/api/verify", json={"fingerprint": FP_A})
    assert resp.status_code == 503
    body = resp.json()
    assert body["ok"] is False
    assert body["statusCode"] == "UNKNOWN"


def test_register_ledger_unreachable(client, fake, config):
    fake.unreachable = True
    resp = client.post("/api/register", json={"fingerprint": FP_A})
    assert resp.status_code == 503
    body = resp.json()
    assert body["ok"] is False
    assert body["statusCode"] == "UNKNOWN"
    assert config.private_key[2:] not in resp.text


def test_invalid_fingerprint_is_400(client, fake):
    resp = client.post("/api/register", json={"fingerprint": "0x1234"})
    assert resp.status_code == 400
    assert resp.json()["statusCode"] == "UNKNOWN"
    assert fake.calls == []


def test_malformed_body_is_400(client):
    resp = client.post("/api/verify", content=b"{not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid JSON body"


def test_network_mismatch_is_500_without_secrets(config, fake):
    fake.chain_id = 1
    service = AnchorService(config, ledger_factory=lambda cfg: fake)
    client = TestClient(create_app(config, service=service, rate_limiter=MemoryRateLimiter(100, 60)))

    resp = client.post("/api/register", json={"fingerprint": FP_A})
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Server misconfiguration"
    assert "Wrong chain id" in body["detail"]
    assert fake.writes == 0
    assert "secret-api-key" not in resp.text


def test_missing_configuration_is_500(fake):
    from anchor.config import AnchorConfig

    service = AnchorService(AnchorConfig(), ledger_factory=lambda cfg: fake)
    client = TestClient(create_app(AnchorConfig(), service=service, rate_limiter=MemoryRateLimiter(100, 60)))
    resp = client.get("/api/verify", params={"hash": FP_A})
    assert resp.status_code == 500
    assert fake.calls == []


def test_tx_lookup(client, fake):
    fake.txs[TX_X] = "mined"
    body = client.get("/api/tx", params={"tx": TX_X}).json()
    assert body["ok"] is True
    assert body["mined"] is True
    assert body["receiptStatus"] == "success"

    assert client.get("/api/tx", params={"tx": "0xzz"}).status_code == 400


def test_diag_never_leaks_key(client, config):
    resp = client.get("/api/diag")
    body = resp.json()
    assert body["bytecodePresent"] is True
    assert body["signerAddress"].startswith("0x")
    assert config.private_key[2:] not in resp.text
    assert "secret-api-key" not in resp.text


def test_verify_usage_without_fingerprint(client):
    body = client.get("/api/verify").json()
    assert body["ok"] is True
    assert "POST /api/verify" in body["message"]


def test_rate_limit_returns_429(config, fake):
    service = AnchorService(config, ledger_factory=lambda cfg: fake)
    client = TestClient(create_app(config, service=service, rate_limiter=MemoryRateLimiter(2, 60)))
    for _ in range(2):
        assert client.get("/api/verify", params={"fingerprint": FP_A}).status_code == 200
    resp = client.get("/api/verify", params={"fingerprint": FP_A})
    assert resp.status_code == 429
    assert "Retry-After" in resp.headers

    other = client.get("/api/verify", params={"fingerprint": FP_A}, headers={"x-forwarded-for": "203.0.113.9"})
    assert other.status_code == 200
