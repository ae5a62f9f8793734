"""
End-to-end behaviour of the practice API over HTTP.
"""

import pytest

DEFAULT_PASSWORD = "correct-horse-battery"

PDF_BYTES = b"%PDF-1.4\n% test brief\n"


def create(client, user, path, payload):
    res = client.post(f"/api/{path}", json=payload, headers=user["headers"])
    assert res.status_code == 201, res.text
    return res.json()


def upload_document(client, user, title="Brief", file_name="brief.pdf", data=PDF_BYTES, mime="application/pdf"):
    return client.post(
        "/api/documents",
        data={"title": title, "linkedCaseId": "case-1"},
        files={"file": (file_name, data, mime)},
        headers=user["headers"],
    )


# ==================== AUTH OVER HTTP ====================


def test_health(client):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"ok": True, "service": "lawease-api", "store": "json"}


def test_signup_and_me(client, admin):
    res = client.get("/api/auth/me", headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["user"] == {
        "id": admin["id"],
        "name": "Ada Admin",
        "email": "admin@lawease.test",
        "role": "admin",
    }


def test_requests_without_session_are_rejected(client):
    res = client.get("/api/clients")
    assert res.status_code == 401
    assert res.json() == {"error": "Missing token"}

    res = client.get("/api/clients", headers={"Authorization": "Bearer garbage"})
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid or expired token"}


def test_login_errors_are_byte_identical(client, admin):
    wrong_password = client.post("/api/auth/login", json={"email": "admin@lawease.test", "password": "nope-nope"})
    unknown_email = client.post("/api/auth/login", json={"email": "who@lawease.test", "password": "nope-nope"})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.content == unknown_email.content


def test_password_reset_flow(client, admin):
    res = client.post("/api/auth/request-password-reset", json={"email": "admin@lawease.test"})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "If the account exists, a reset token has been generated."
    token = body["resetToken"]
    assert body["expiresAt"]

    res = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "a-new-password"})
    assert res.status_code == 200
    assert res.json() == {"message": "Password updated"}

    again = client.post("/api/auth/reset-password", json={"token": token, "newPassword": "another-password"})
    bogus = client.post("/api/auth/reset-password", json={"token": "deadbeef", "newPassword": "another-password"})
    assert again.status_code == bogus.status_code == 400
    assert again.json() == bogus.json() == {"error": "Invalid or expired token"}

    assert client.post(
        "/api/auth/login", json={"email": "admin@lawease.test", "password": "a-new-password"}
    ).status_code == 200
    assert client.post(
        "/api/auth/login", json={"email": "admin@lawease.test", "password": DEFAULT_PASSWORD}
    ).status_code == 401


def test_duplicate_signup_conflicts(client, admin):
    res = client.post(
        "/api/auth/signup", json={"email": "ADMIN@lawease.test", "password": DEFAULT_PASSWORD}
    )
    assert res.status_code == 409
    assert res.json() == {"error": "Account already exists"}


def test_malformed_payload_is_a_400(client):
    res = client.post("/api/auth/login", content=b"{not json", headers={"Content-Type": "application/json"})
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid request payload"}


# ==================== ADMIN ====================


def test_admin_manages_roles(client, admin, staff):
    res = client.get("/api/admin/users", headers=admin["headers"])
    assert res.status_code == 200
    users = {u["email"]: u for u in res.json()["users"]}
    assert set(users) == {"admin@lawease.test", "staff@lawease.test"}
    assert "createdAt" in users["staff@lawease.test"]

    res = client.patch(f"/api/admin/users/{staff['id']}/role", json={"role": "lawyer"}, headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["user"]["role"] == "lawyer"

    res = client.get("/api/auth/me", headers=staff["headers"])
    assert res.json()["user"]["role"] == "lawyer"


def test_admin_endpoints_need_permission(client, lawyer):
    assert client.get("/api/admin/users", headers=lawyer["headers"]).status_code == 403
    res = client.patch(f"/api/admin/users/{lawyer['id']}/role", json={"role": "admin"}, headers=lawyer["headers"])
    assert res.status_code == 403
    assert res.json() == {"error": "Insufficient permissions"}


def test_invalid_role_rejected(client, admin):
    res = client.patch(f"/api/admin/users/{admin['id']}/role", json={"role": "owner"}, headers=admin["headers"])
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid role"}


# ==================== CRUD & OWNERSHIP ====================


def test_client_crud(client, lawyer):
    created = create(client, lawyer, "clients", {"fullName": "Jane Roe", "email": "jane@example.com"})["client"]
    assert created["fullName"] == "Jane Roe"
    assert created["ownerId"] == lawyer["id"]
    assert created["phone"] == ""

    res = client.put(
        f"/api/clients/{created['id']}", json={"fullName": "Jane Q. Roe", "phone": "555-0100"}, headers=lawyer["headers"]
    )
    assert res.status_code == 200
    updated = res.json()["client"]
    assert updated["fullName"] == "Jane Q. Roe"
    assert updated["phone"] == "555-0100"
    # Full replacement: omitted optional fields go back to defaults.
    assert updated["email"] == ""

    assert client.get(f"/api/clients/{created['id']}", headers=lawyer["headers"]).json()["client"] == updated
    assert client.delete(f"/api/clients/{created['id']}", headers=lawyer["headers"]).status_code == 204
    assert client.get("/api/clients", headers=lawyer["headers"]).json() == {"clients": []}


@pytest.mark.parametrize(
    "path,payload,message",
    [
        ("clients", {"email": "x@example.com"}, "Client full name is required"),
        ("cases", {"status": "open"}, "Case title is required"),
        ("messages", {"subject": "Hello"}, "Subject and message body are required"),
    ],
)
def test_required_fields(client, lawyer, path, payload, message):
    res = client.post(f"/api/{path}", json=payload, headers=lawyer["headers"])
    assert res.status_code == 400
    assert res.json() == {"error": message}


def test_defaults_applied(client, lawyer):
    matter = create(client, lawyer, "cases", {"title": "Roe v. Doe"})["case"]
    message = create(client, lawyer, "messages", {"subject": "Hearing", "body": "See you Monday"})["message"]
    assert matter["status"] == "open"
    assert message["channel"] == "email"


def test_lists_are_newest_first(client, lawyer):
    for name in ("First", "Second", "Third"):
        create(client, lawyer, "clients", {"fullName": name})
    names = [c["fullName"] for c in client.get("/api/clients", headers=lawyer["headers"]).json()["clients"]]
    assert names == ["Third", "Second", "First"]


def test_foreign_records_look_missing(client, admin, lawyer):
    matter = create(client, lawyer, "cases", {"title": "Private matter"})["case"]
    url = f"/api/cases/{matter['id']}"

    responses = [
        client.get(url, headers=admin["headers"]),
        client.put(url, json={"title": "Hijacked"}, headers=admin["headers"]),
        client.delete(url, headers=admin["headers"]),
    ]
    for res in responses:
        assert res.status_code == 404
        assert res.json() == {"error": "Case not found"}

    assert client.get("/api/cases", headers=admin["headers"]).json() == {"cases": []}
    assert client.get(url, headers=lawyer["headers"]).json()["case"]["title"] == "Private matter"


def test_staff_cannot_delete_own_records(client, staff):
    record = create(client, staff, "clients", {"fullName": "Own client"})["client"]
    res = client.delete(f"/api/clients/{record['id']}", headers=staff["headers"])
    assert res.status_code == 403
    assert res.json() == {"error": "Insufficient permissions"}
    assert client.get(f"/api/clients/{record['id']}", headers=staff["headers"]).status_code == 200


# ==================== DOCUMENTS ====================


def test_document_blob_lifecycle(client, context, lawyer):
    res = upload_document(client, lawyer)
    assert res.status_code == 201, res.text
    document = res.json()["document"]
    key = document["storageKey"]
    assert document["fileName"] == "brief.pdf"
    assert document["mimeType"] == "application/pdf"
    assert document["fileSize"] == len(PDF_BYTES)
    assert document["linkedCaseId"] == "case-1"
    assert document["type"] == "general"
    assert context.blobs.exists(key)

    res = client.get(f"/api/documents/{document['id']}/download", headers=lawyer["headers"])
    assert res.status_code == 200
    assert res.content == PDF_BYTES
    assert res.headers["content-type"].startswith("application/pdf")
    assert 'filename="brief.pdf"' in res.headers["content-disposition"]

    assert client.delete(f"/api/documents/{document['id']}", headers=lawyer["headers"]).status_code == 204
    assert not context.blobs.exists(key)
    res = client.get(f"/api/documents/{document['id']}/download", headers=lawyer["headers"])
    assert res.status_code == 404


def test_replacing_a_file_releases_the_old_blob(client, context, lawyer):
    document = upload_document(client, lawyer).json()["document"]
    old_key = document["storageKey"]

    res = client.put(
        f"/api/documents/{document['id']}",
        data={"title": "Brief v2", "type": "pleading"},
        files={"file": ("notes.txt", b"plain text", "text/plain")},
        headers=lawyer["headers"],
    )
    assert res.status_code == 200, res.text
    updated = res.json()["document"]
    assert updated["title"] == "Brief v2"
    assert updated["type"] == "pleading"
    assert updated["storageKey"] != old_key
    assert not context.blobs.exists(old_key)
    assert context.blobs.get(updated["storageKey"]) == b"plain text"


def test_metadata_update_keeps_file(client, context, lawyer):
    document = upload_document(client, lawyer).json()["document"]
    res = client.put(f"/api/documents/{document['id']}", data={"title": "Renamed"}, headers=lawyer["headers"])
    assert res.status_code == 200
    updated = res.json()["document"]
    assert updated["storageKey"] == document["storageKey"]
    assert context.blobs.exists(document["storageKey"])


def test_document_without_file_has_nothing_to_download(client, lawyer):
    res = client.post("/api/documents", data={"title": "Placeholder"}, headers=lawyer["headers"])
    assert res.status_code == 201
    document = res.json()["document"]
    assert document["storageKey"] == ""

    res = client.get(f"/api/documents/{document['id']}/download", headers=lawyer["headers"])
    assert res.status_code == 404
    assert res.json() == {"error": "No file attached to this document"}


def test_upload_rules(client, context, lawyer, tmp_path):
    res = upload_document(client, lawyer, file_name="run.exe", mime="application/x-msdownload")
    assert res.status_code == 400
    assert res.json() == {"error": "Unsupported file type"}

    res = upload_document(client, lawyer, data=b"x" * 2048)
    assert res.status_code == 400
    assert res.json() == {"error": "File too large"}

    res = client.post("/api/documents", data={"notes": "no title"}, headers=lawyer["headers"])
    assert res.status_code == 400
    assert res.json() == {"error": "Document title is required"}

    # Nothing was written for any rejected upload.
    uploads = tmp_path / "uploads" / "documents"
    assert not uploads.exists() or not any(uploads.iterdir())
    assert client.get("/api/documents", headers=lawyer["headers"]).json() == {"documents": []}


def test_oversized_upload_is_refused_before_parsing(client, lawyer, tmp_path):
    res = upload_document(client, lawyer, data=b"x" * (200 * 1024))
    assert res.status_code == 400
    assert res.json() == {"error": "File too large"}
    assert res.headers["X-Content-Type-Options"] == "nosniff"

    uploads = tmp_path / "uploads" / "documents"
    assert not uploads.exists() or not any(uploads.iterdir())
    assert client.get("/api/documents", headers=lawyer["headers"]).json() == {"documents": []}


def test_foreign_document_download_is_not_found(client, admin, lawyer):
    document = upload_document(client, lawyer).json()["document"]
    res = client.get(f"/api/documents/{document['id']}/download", headers=admin["headers"])
    assert res.status_code == 404
    assert res.json() == {"error": "Document not found"}


# ==================== STATS & AUDIT ====================


def test_stats(client, lawyer):
    create(client, lawyer, "clients", {"fullName": "One"})
    create(client, lawyer, "clients", {"fullName": "Two"})
    create(client, lawyer, "cases", {"title": "Closed", "status": "closed"})
    create(client, lawyer, "cases", {"title": "Hearing 1", "nextHearingDate": "2026-11-02"})
    create(client, lawyer, "cases", {"title": "Hearing 2", "nextHearingDate": "2026-11-09"})
    assert upload_document(client, lawyer).status_code == 201
    create(client, lawyer, "messages", {"subject": "Hi", "body": "Hello"})

    res = client.get("/api/stats", headers=lawyer["headers"])
    assert res.status_code == 200
    assert res.json() == {
        "stats": {"clients": 2, "activeCases": 2, "upcomingHearings": 2, "documents": 1, "messages": 1}
    }


def test_stats_only_count_own_records(client, admin, lawyer):
    create(client, lawyer, "clients", {"fullName": "Lawyer's client"})
    stats = client.get("/api/stats", headers=admin["headers"]).json()["stats"]
    assert stats["clients"] == 0


def test_audit_log_newest_first(client, admin):
    res = client.post("/api/auth/login", json={"email": "admin@lawease.test", "password": DEFAULT_PASSWORD})
    assert res.status_code == 200
    created = create(client, admin, "clients", {"fullName": "Audited"})["client"]

    res = client.get("/api/audit-logs", headers=admin["headers"])
    assert res.status_code == 200
    logs = res.json()["logs"]
    actions = [entry["action"] for entry in logs]
    assert actions[:3] == ["CLIENT_CREATED", "AUTH_LOGIN", "AUTH_SIGNUP"]
    assert logs[0]["userId"] == admin["id"]
    assert logs[0]["metadata"] == {"clientId": created["id"]}

    limited = client.get("/api/audit-logs?limit=1", headers=admin["headers"]).json()["logs"]
    assert [entry["action"] for entry in limited] == ["CLIENT_CREATED"]


def test_audit_log_requires_permission(client, lawyer):
    res = client.get("/api/audit-logs", headers=lawyer["headers"])
    assert res.status_code == 403


def test_document_audit_records_file_flag(client, admin):
    upload_document(client, admin)
    logs = client.get("/api/audit-logs?limit=1", headers=admin["headers"]).json()["logs"]
    assert logs[0]["action"] == "DOCUMENT_CREATED"
    assert logs[0]["metadata"]["hasFile"] is True
