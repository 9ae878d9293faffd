from contextlib import contextmanager
from datetime import timedelta

from ridepay.core.enums import PaymentStatus
from ridepay.integrations.payment_providers import ProviderResponse
from ridepay.utils.time import utcnow


def test_health(client):
    r = client.get("/health")

    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_metrics_are_exposed(client, records, provider):
    # Drive one payment through so the counters have samples.
    booking = records.booking()
    client.post(
        "/api/v1/payments",
        json={
            "booking_id": booking.id,
            "amount": 2500,
            "provider": "mtn",
            "phone_number": "677123456",
        },
        headers={"X-User-Id": booking.user_id},
    )

    r = client.get("/metrics")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "ridepay_payment_status_transitions_total" in r.text


def test_cron_reconcile_runs_sweep(client, db, records, provider):
    booking = records.booking()
    payment = records.payment(
        booking,
        status=PaymentStatus.PROCESSING.value,
        transaction_id="payin-ref-1",
        created_at=utcnow() - timedelta(minutes=30),
    )
    provider.payment_status = ProviderResponse(success=True, status="SUCCESSFUL")

    r = client.post("/api/v1/cron/reconcile")

    assert r.status_code == 200
    body = r.json()
    assert body["skipped"] is False
    assert body["payments"]["checked"] == 1
    assert body["payments"]["results"][0]["new_status"] == "completed"
    db.refresh(payment)
    assert payment.status == PaymentStatus.COMPLETED.value


def test_cron_reconcile_reports_skip(client, monkeypatch):
    @contextmanager
    def held(key, ttl_s=90):
        yield False

    monkeypatch.setattr("ridepay.services.reconciliation_sweep_service.named_lock_sync", held)

    r = client.post("/api/v1/cron/reconcile")

    assert r.json() == {
        "skipped": True,
        "reason": "Sweep already running",
        "payments": None,
        "payouts": None,
        "refunds": None,
    }
