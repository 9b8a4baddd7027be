"""
tests/test_api_routes.py -- Integration tests for supplier and admin routes.

These tests exercise the full stack: FastAPI routing -> session and role
dependencies -> upload handling -> SupplierLifecycle/DocumentAccess ->
SQLite -> response models, plus the notification worker running on the
TestClient's event loop.

Coverage:
  - apply: multipart PDFs, duplicate, missing/invalid/oversize files, cleanup
  - admin queue: role gating (ADMIN vs REVIEWER vs everyone else)
  - user directory: filters, profile and documents per user, REVIEWER scoping
  - approve/reject over HTTP, role promotion visible on /me, emails sent
  - own profile: read, edit when APPROVED, delete and re-apply
  - document links: owner download (attachment) vs staff view (inline)
"""

from __future__ import annotations

from pathlib import Path

from auth.models import Role
from core.config import get_settings
from tests.conftest import PDF_BYTES, ApiHarness


def _stored_files() -> set[Path]:
    upload_dir = Path(get_settings().upload_dir)
    return set(upload_dir.iterdir()) if upload_dir.exists() else set()


class TestApply:
    def test_apply_requires_session(self, api: ApiHarness) -> None:
        resp = api.client.post(
            "/api/v1/suppliers/apply",
            files=[("documents", ("a.pdf", PDF_BYTES, "application/pdf"))],
        )
        assert resp.status_code == 401

    def test_apply_creates_pending_application(self, api: ApiHarness) -> None:
        user, headers = api.user()
        resp = api.apply(headers, count=2)

        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["status"] == "PENDING"
        assert data["user_id"] == user.id
        assert [d["file_name"] for d in data["documents"]] == ["doc0.pdf", "doc1.pdf"]
        assert all("file_path" not in d for d in data["documents"])
        assert data["business"] is None

        me = api.client.get("/api/v1/auth/me", headers=headers).json()
        assert me["is_supplier_applicant"] is True
        assert me["role"] == "REGULAR"

    def test_second_application_conflicts(self, api: ApiHarness) -> None:
        _user, headers = api.user()
        assert api.apply(headers).status_code == 201
        before = _stored_files()
        resp = api.apply(headers)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"
        assert _stored_files() == before

    def test_apply_without_documents(self, api: ApiHarness) -> None:
        _user, headers = api.user()
        resp = api.client.post("/api/v1/suppliers/apply", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_apply_with_too_many_documents(self, api: ApiHarness) -> None:
        _user, headers = api.user()
        resp = api.apply(headers, count=get_settings().max_upload_files + 1)
        assert resp.status_code == 400

    def test_invalid_file_leaves_nothing_behind(self, api: ApiHarness) -> None:
        _user, headers = api.user()
        before = _stored_files()
        files = [
            ("documents", ("good.pdf", PDF_BYTES, "application/pdf")),
            ("documents", ("bad.png", b"\x89PNG\r\n", "image/png")),
        ]
        resp = api.client.post("/api/v1/suppliers/apply", files=files, headers=headers)

        assert resp.status_code == 400
        assert resp.json()["error"]["detail"] == "bad.png"
        assert _stored_files() == before
        assert api.client.get("/api/v1/suppliers/profile", headers=headers).status_code == 404
        # The failed attempt did not consume the application
        assert api.apply(headers).status_code == 201

    def test_oversize_file_is_413(self, api: ApiHarness) -> None:
        _user, headers = api.user()
        big = b"%PDF-1.4\n" + b"0" * get_settings().max_upload_bytes
        resp = api.client.post(
            "/api/v1/suppliers/apply",
            files=[("documents", ("big.pdf", big, "application/pdf"))],
            headers=headers,
        )
        assert resp.status_code == 413
        assert resp.json()["error"]["code"] == "file_too_large"


class TestAdminQueue:
    def test_regular_and_supplier_cannot_list(self, api: ApiHarness) -> None:
        for role in (Role.REGULAR, Role.SUPPLIER):
            _user, headers = api.user(role)
            resp = api.client.get("/api/v1/admin/suppliers", headers=headers)
            assert resp.status_code == 403
            assert resp.json()["error"]["code"] == "forbidden"

    def test_reviewer_can_list_and_read(self, api: ApiHarness) -> None:
        _applicant, app_headers = api.user()
        profile_id = api.apply(app_headers).json()["id"]
        _reviewer, headers = api.user(Role.REVIEWER)

        listed = api.client.get("/api/v1/admin/suppliers", params={"status": "PENDING"}, headers=headers)
        assert listed.status_code == 200
        assert profile_id in [p["id"] for p in listed.json()]
        assert all(p["status"] == "PENDING" for p in listed.json())

        detail = api.client.get(f"/api/v1/admin/suppliers/{profile_id}", headers=headers)
        assert detail.status_code == 200
        assert len(detail.json()["documents"]) == 1

    def test_reviewer_cannot_decide(self, api: ApiHarness) -> None:
        _applicant, app_headers = api.user()
        profile_id = api.apply(app_headers).json()["id"]
        _reviewer, headers = api.user(Role.REVIEWER)

        assert api.client.post(f"/api/v1/admin/suppliers/{profile_id}/approve", headers=headers).status_code == 403
        resp = api.client.post(
            f"/api/v1/admin/suppliers/{profile_id}/reject", json={"reason": "No"}, headers=headers
        )
        assert resp.status_code == 403

    def test_unknown_application(self, api: ApiHarness) -> None:
        _admin, headers = api.user(Role.ADMIN)
        assert api.client.get("/api/v1/admin/suppliers/999999", headers=headers).status_code == 404
        assert api.client.post("/api/v1/admin/suppliers/999999/approve", headers=headers).status_code == 404


class TestUserDirectory:
    def test_regular_and_supplier_cannot_browse(self, api: ApiHarness) -> None:
        for role in (Role.REGULAR, Role.SUPPLIER):
            user, headers = api.user(role)
            assert api.client.get("/api/v1/admin/users", headers=headers).status_code == 403
            assert api.client.get(f"/api/v1/admin/users/{user.id}", headers=headers).status_code == 403

    def test_admin_finds_user_with_profile_and_documents(self, api: ApiHarness) -> None:
        applicant, app_headers = api.user()
        api.apply(app_headers, count=2)
        _admin, headers = api.user(Role.ADMIN)

        listed = api.client.get("/api/v1/admin/users", params={"email": applicant.email.upper()}, headers=headers)
        assert listed.status_code == 200
        assert [u["id"] for u in listed.json()] == [applicant.id]
        row = listed.json()[0]
        assert row["supplier_profile"]["status"] == "PENDING"
        assert len(row["supplier_profile"]["documents"]) == 2
        assert "hashed_password" not in row
        assert all("file_path" not in d for d in row["supplier_profile"]["documents"])

        detail = api.client.get(f"/api/v1/admin/users/{applicant.id}", headers=headers)
        assert detail.status_code == 200
        assert detail.json()["email"] == applicant.email

    def test_status_filter(self, api: ApiHarness) -> None:
        applicant, app_headers = api.user()
        profile_id = api.apply(app_headers).json()["id"]
        _admin, headers = api.user(Role.ADMIN)
        api.client.post(f"/api/v1/admin/suppliers/{profile_id}/reject", json={"reason": "Blurry"}, headers=headers)
        api.drain()

        rejected = api.client.get("/api/v1/admin/users", params={"status": "REJECTED"}, headers=headers).json()
        pending = api.client.get("/api/v1/admin/users", params={"status": "PENDING"}, headers=headers).json()
        assert applicant.id in [u["id"] for u in rejected]
        assert applicant.id not in [u["id"] for u in pending]
        assert all(u["supplier_profile"]["status"] == "REJECTED" for u in rejected)

    def test_reviewer_never_sees_staff_accounts(self, api: ApiHarness) -> None:
        admin, _ = api.user(Role.ADMIN)
        regular, _ = api.user()
        _reviewer, headers = api.user(Role.REVIEWER)

        listed = api.client.get("/api/v1/admin/users", headers=headers)
        assert listed.status_code == 200
        assert {u["role"] for u in listed.json()} <= {"REGULAR", "SUPPLIER"}
        assert regular.id in [u["id"] for u in listed.json()]

        asked = api.client.get("/api/v1/admin/users", params={"role": "ADMIN"}, headers=headers)
        assert asked.json() == []
        assert api.client.get(f"/api/v1/admin/users/{admin.id}", headers=headers).status_code == 404
        assert api.client.get(f"/api/v1/admin/users/{regular.id}", headers=headers).status_code == 200

    def test_unknown_user(self, api: ApiHarness) -> None:
        _admin, headers = api.user(Role.ADMIN)
        assert api.client.get("/api/v1/admin/users/999999", headers=headers).status_code == 404


class TestDecisions:
    def test_approve_promotes_and_notifies(self, api: ApiHarness) -> None:
        applicant, app_headers = api.user()
        profile_id = api.apply(app_headers).json()["id"]
        _admin, headers = api.user(Role.ADMIN)

        resp = api.client.post(f"/api/v1/admin/suppliers/{profile_id}/approve", headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == "APPROVED"

        # /me re-reads the store, so the old session already shows the new role
        me = api.client.get("/api/v1/auth/me", headers=app_headers).json()
        assert me["role"] == "SUPPLIER"

        api.drain()
        assert any(to == applicant.email and "Approved" in subject for to, subject, _ in api.transport.sent)

        again = api.client.post(f"/api/v1/admin/suppliers/{profile_id}/approve", headers=headers)
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "invalid_transition"

    def test_reject_requires_reason(self, api: ApiHarness) -> None:
        _applicant, app_headers = api.user()
        profile_id = api.apply(app_headers).json()["id"]
        _admin, headers = api.user(Role.ADMIN)

        for body in ({}, {"reason": ""}, {"reason": "   "}):
            resp = api.client.post(f"/api/v1/admin/suppliers/{profile_id}/reject", json=body, headers=headers)
            assert resp.status_code == 400
            assert resp.json()["error"]["code"] == "validation_error"

        status = api.client.get(f"/api/v1/admin/suppliers/{profile_id}", headers=headers).json()["status"]
        assert status == "PENDING"

    def test_reject_records_reason_and_notifies(self, api: ApiHarness) -> None:
        applicant, app_headers = api.user()
        profile_id = api.apply(app_headers).json()["id"]
        _admin, headers = api.user(Role.ADMIN)

        resp = api.client.post(
            f"/api/v1/admin/suppliers/{profile_id}/reject",
            json={"reason": "Business license expired"},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "REJECTED"
        assert resp.json()["rejection_reason"] == "Business license expired"

        me = api.client.get("/api/v1/auth/me", headers=app_headers).json()
        assert me["role"] == "REGULAR"

        api.drain()
        rejected = [html for to, subject, html in api.transport.sent if to == applicant.email and "Rejected" in subject]
        assert len(rejected) == 1
        assert "Business license expired" in rejected[0]


class TestOwnProfile:
    def test_edit_only_after_approval(self, api: ApiHarness) -> None:
        _applicant, app_headers = api.user()
        profile_id = api.apply(app_headers).json()["id"]
        update = {"business_name": "Acme Lumber", "city": "Tacoma"}

        early = api.client.put("/api/v1/suppliers/profile", json=update, headers=app_headers)
        assert early.status_code == 403

        _admin, headers = api.user(Role.ADMIN)
        api.client.post(f"/api/v1/admin/suppliers/{profile_id}/approve", headers=headers)

        resp = api.client.put("/api/v1/suppliers/profile", json=update, headers=app_headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["business"]["business_name"] == "Acme Lumber"
        assert resp.json()["business"]["city"] == "Tacoma"

        fetched = api.client.get("/api/v1/suppliers/profile", headers=app_headers).json()
        assert fetched["business"]["business_name"] == "Acme Lumber"

    def test_status_is_not_editable(self, api: ApiHarness) -> None:
        _applicant, app_headers = api.user()
        api.apply(app_headers)
        resp = api.client.put("/api/v1/suppliers/profile", json={"status": "APPROVED"}, headers=app_headers)
        assert resp.status_code == 422

    def test_delete_then_reapply(self, api: ApiHarness) -> None:
        _applicant, app_headers = api.user()
        api.apply(app_headers, count=2)
        before = _stored_files()

        resp = api.client.delete("/api/v1/suppliers/profile", headers=app_headers)
        assert resp.status_code == 200
        assert len(before - _stored_files()) == 2
        assert api.client.get("/api/v1/suppliers/profile", headers=app_headers).status_code == 404
        assert api.client.delete("/api/v1/suppliers/profile", headers=app_headers).status_code == 404

        assert api.apply(app_headers).status_code == 201


class TestDocumentLinks:
    def test_owner_downloads_as_attachment(self, api: ApiHarness) -> None:
        _owner, headers = api.user()
        doc_id = api.apply(headers).json()["documents"][0]["id"]

        link = api.client.get(f"/api/v1/suppliers/documents/{doc_id}/link", headers=headers)
        assert link.status_code == 200, link.text
        assert link.json()["mode"] == "download"
        assert link.json()["expires_in"] == 15 * 60

        # No session cookie: the token alone authorizes the transfer
        resp = api.client.get(link.json()["url"])
        assert resp.status_code == 200
        assert resp.content == PDF_BYTES
        assert resp.headers["content-type"].startswith("application/pdf")
        assert resp.headers["content-disposition"].startswith("attachment")
        assert resp.headers["cache-control"] == "no-store"
        assert resp.headers["x-content-type-options"] == "nosniff"

    def test_reviewer_views_inline(self, api: ApiHarness) -> None:
        _owner, owner_headers = api.user()
        doc_id = api.apply(owner_headers).json()["documents"][0]["id"]
        _reviewer, headers = api.user(Role.REVIEWER)

        link = api.client.get(f"/api/v1/suppliers/documents/{doc_id}/link", headers=headers).json()
        assert link["mode"] == "view"
        assert link["expires_in"] == 30 * 60

        resp = api.client.get(link["url"])
        assert resp.status_code == 200
        assert resp.headers["content-disposition"].startswith("inline")

    def test_other_users_document_is_forbidden(self, api: ApiHarness) -> None:
        _owner, owner_headers = api.user()
        doc_id = api.apply(owner_headers).json()["documents"][0]["id"]
        _stranger, headers = api.user()

        resp = api.client.get(f"/api/v1/suppliers/documents/{doc_id}/link", headers=headers)
        assert resp.status_code == 403

    def test_link_requires_session(self, api: ApiHarness) -> None:
        assert api.client.get("/api/v1/suppliers/documents/1/link").status_code == 401

    def test_missing_document(self, api: ApiHarness) -> None:
        _admin, headers = api.user(Role.ADMIN)
        assert api.client.get("/api/v1/suppliers/documents/999999/link", headers=headers).status_code == 404

    def test_download_needs_valid_token(self, api: ApiHarness) -> None:
        assert api.client.get("/api/v1/suppliers/documents/download").status_code == 401
        resp = api.client.get("/api/v1/suppliers/documents/download", params={"token": "forged"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "invalid_credential"

    def test_session_cookie_is_not_a_download_token(self, api: ApiHarness) -> None:
        _owner, headers = api.user()
        token = headers["Cookie"].split("=", 1)[1]
        resp = api.client.get("/api/v1/suppliers/documents/download", params={"token": token})
        assert resp.status_code == 403

    def test_link_dies_with_profile(self, api: ApiHarness) -> None:
        _owner, headers = api.user()
        doc_id = api.apply(headers).json()["documents"][0]["id"]
        url = api.client.get(f"/api/v1/suppliers/documents/{doc_id}/link", headers=headers).json()["url"]

        api.client.delete("/api/v1/suppliers/profile", headers=headers)

        assert api.client.get(url).status_code == 404
