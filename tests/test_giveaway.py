from datetime import datetime, timedelta, timezone

import giveaway_api
import giveaway_email

IP = "203.0.113.7"


def entry_body(n: int) -> dict:
    return {"email": f"fan{n}@surprizely.com", "orderID": f"ORDER-{n}"}


def test_rate_limit_window(store):
    start = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    for i in range(5):
        store.create_giveaway_entry({
            "email": f"fan{i}@surprizely.com",
            "ip_address": IP,
            "order_id": f"O{i}",
            "created_at": start + timedelta(minutes=i),
        })
    assert store.count_recent_giveaway_entries(IP, 60, now=start + timedelta(minutes=10)) == 5
    assert store.count_recent_giveaway_entries("198.51.100.1", 60, now=start + timedelta(minutes=10)) == 0
    assert store.count_recent_giveaway_entries(IP, 60, now=start + timedelta(minutes=65)) == 0


def proxied(hops: str) -> dict:
    return {"X-Forwarded-For": hops}


def test_sixth_entry_is_rejected(client, app, sent_emails):
    for i in range(5):
        resp = client.post("/api/giveaway", json=entry_body(i), headers=proxied(IP))
        assert resp.status_code == 201

    resp = client.post("/api/giveaway", json=entry_body(6), headers=proxied(IP))
    assert resp.status_code == 429
    assert len(sent_emails) == 5

    entries = app.extensions["surprizely.entity_store"].get_giveaway_entries()
    assert {e.ip_address for e in entries} == {IP}

    other = client.post("/api/giveaway", json=entry_body(7), headers=proxied("198.51.100.9"))
    assert other.status_code == 201


def test_client_supplied_hops_do_not_reset_limit(client):
    statuses = [
        client.post("/api/giveaway", json=entry_body(i), headers=proxied(f"10.9.9.{i}, {IP}")).status_code
        for i in range(6)
    ]
    assert statuses == [201] * 5 + [429]


def test_entries_allowed_again_after_window(client, app):
    for i in range(5):
        assert client.post("/api/giveaway", json=entry_body(i), headers=proxied(IP)).status_code == 201
    assert client.post("/api/giveaway", json=entry_body(5), headers=proxied(IP)).status_code == 429

    an_hour_ago = (datetime.now(timezone.utc) - timedelta(minutes=61)).isoformat()
    for entry in app.extensions["surprizely.entity_store"].get_giveaway_entries():
        entry.created_at = an_hour_ago

    assert client.post("/api/giveaway", json=entry_body(6), headers=proxied(IP)).status_code == 201


def test_entry_marks_email_sent(client, app):
    resp = client.post("/api/giveaway", json=entry_body(1))
    assert resp.status_code == 201
    entry = resp.get_json()["entry"]
    assert entry["emailSent"] is True
    assert entry["orderId"] == "ORDER-1"
    assert entry["status"] == "pending"


def test_email_failure_does_not_fail_entry(client, monkeypatch):
    monkeypatch.setattr(giveaway_api, "send_giveaway_confirmation", lambda email, order_id: False)
    resp = client.post("/api/giveaway", json=entry_body(1))
    assert resp.status_code == 201
    assert resp.get_json()["entry"]["emailSent"] is False


def test_screenshot_only_entry(client):
    resp = client.post("/api/giveaway", json={
        "email": "shot@surprizely.com",
        "orderScreenshot": "/uploads/receipt_1.png",
    })
    assert resp.status_code == 201
    entry = resp.get_json()["entry"]
    assert entry["orderId"] == "Screenshot provided"
    assert entry["screenshotUrl"] == "/uploads/receipt_1.png"


def test_entry_needs_order_or_screenshot(client):
    resp = client.post("/api/giveaway", json={"email": "none@surprizely.com"})
    assert resp.status_code == 400


def test_admin_moderates_entries(client, admin_client):
    client.post("/api/giveaway", json=entry_body(1))
    assert client.get("/api/admin/giveaway-entries").status_code == 401

    entries = admin_client.get("/api/admin/giveaway-entries").get_json()
    assert len(entries) == 1

    resp = admin_client.patch(f"/api/admin/giveaway-entries/{entries[0]['id']}", json={"status": "approved"})
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "approved"

    assert admin_client.patch("/api/admin/giveaway-entries/99", json={"status": "approved"}).status_code == 404
    assert admin_client.patch(f"/api/admin/giveaway-entries/{entries[0]['id']}", json={"status": "won"}).status_code == 400


def test_upload_screenshot(client, app):
    import io

    resp = client.post(
        "/api/upload",
        data={"file": (io.BytesIO(b"\x89PNG fake"), "receipt.png")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201
    url = resp.get_json()["url"]
    assert url.startswith("/uploads/receipt_") and url.endswith(".png")
    assert client.get(url).data == b"\x89PNG fake"

    bad = client.post(
        "/api/upload",
        data={"file": (io.BytesIO(b"MZ"), "tool.exe")},
        content_type="multipart/form-data",
    )
    assert bad.status_code == 400


def test_send_confirmation_disabled_without_config(monkeypatch):
    monkeypatch.setattr(giveaway_email.settings, "EMAIL_HOST", "")
    assert giveaway_email.send_giveaway_confirmation("a@surprizely.com", "X1") is False


def test_send_confirmation_swallows_smtp_errors(monkeypatch):
    import smtplib

    monkeypatch.setattr(giveaway_email.settings, "EMAIL_HOST", "smtp.surprizely.com")
    monkeypatch.setattr(giveaway_email.settings, "EMAIL_USER", "mailer")
    monkeypatch.setattr(giveaway_email.settings, "EMAIL_PASS", "secret")

    def refuse():
        raise smtplib.SMTPConnectError(421, "unavailable")

    monkeypatch.setattr(giveaway_email, "_connect", refuse)
    assert giveaway_email.send_giveaway_confirmation("a@surprizely.com", "X1") is False


def test_confirmation_message_contents():
    msg = giveaway_email.build_confirmation("a@surprizely.com", "ORDER-9")
    assert msg["To"] == "a@surprizely.com"
    assert msg["Subject"] == "Giveaway Entry Confirmation"
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "ORDER-9" in html
