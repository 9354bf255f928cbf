from fastapi.testclient import TestClient

from fashionmarket.main import app

client = TestClient(app)


def test_health_ok():
    res = client.get("/api/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["db"] is True
    assert body["mailer"] is True
    assert body["mailer_transport"] == "OutboxMailer"
