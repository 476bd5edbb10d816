"""HTTP-level tests through the FastAPI test client."""
import io
import uuid
import zipfile

from shutterlink.config import SESSION_COOKIE
from tests.conftest import ADMIN_PASSWORD, PHOTOGRAPHER_PASSWORD, make_image_bytes


def _login(api_client, username, password, role=None):
    response = api_client.post("/api/auth/login", json={
        "username": username, "password": password, "role": role,
    })
    assert response.status_code == 200, response.text
    return response.json()


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestAuthEndpoints:

    def test_login_sets_session_cookie(self, api_client, photographer):
        response = api_client.post("/api/auth/login", json={
            "username": "studio-north", "password": PHOTOGRAPHER_PASSWORD,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["principal"]["role"] == "photographer"
        assert response.cookies.get(SESSION_COOKIE) == data["session_id"]

    def test_login_wrong_password(self, api_client, photographer):
        response = api_client.post("/api/auth/login", json={
            "username": "studio-north", "password": "wrong-password",
        })

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"

    def test_me_with_bearer_token(self, api_client, photographer):
        token = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["access_token"]

        response = api_client.get("/api/auth/me", headers=_bearer(token))

        assert response.status_code == 200
        assert response.json()["id"] == photographer.id

    def test_me_without_token(self, api_client):
        response = api_client.get("/api/auth/me")

        assert response.status_code == 401

    def test_malformed_authorization_header(self, api_client):
        response = api_client.get("/api/auth/me", headers={"Authorization": "Token abc"})

        assert response.status_code == 401

    def test_refresh_from_cookie_then_logout(self, api_client, photographer):
        # Arrange
        _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)

        # Act
        refreshed = api_client.post("/api/auth/refresh")
        logged_out = api_client.post("/api/auth/logout")
        api_client.cookies.clear()
        after = api_client.post("/api/auth/refresh")

        # Assert
        assert refreshed.status_code == 200
        assert refreshed.json()["access_token"]
        assert logged_out.status_code == 200
        assert after.status_code == 401

    def test_refresh_with_body(self, api_client, photographer):
        session_id = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["session_id"]
        api_client.cookies.clear()

        response = api_client.post("/api/auth/refresh", json={"session_id": session_id})

        assert response.status_code == 200


class TestAuthorizeEndpoint:

    def test_client_allowed(self, api_client, shared_collection, photo, client_principal, client_secret):
        token = _login(api_client, client_principal.username, client_secret, "client")["access_token"]

        response = api_client.get(
            "/api/authorize", params={"resource_id": photo["id"]}, headers=_bearer(token)
        )

        assert response.status_code == 200
        assert response.json() == {"allowed": True, "reason": None}

    def test_client_denied_update(self, api_client, shared_collection, photo, client_principal, client_secret):
        token = _login(api_client, client_principal.username, client_secret, "client")["access_token"]

        response = api_client.get(
            "/api/authorize", params={"resource_id": photo["id"], "operation": "update"},
            headers=_bearer(token)
        )

        assert response.json()["allowed"] is False

    def test_marked_collection_is_gone(self, api_client, services, photographer, shared_collection, photo,
                                       client_principal, client_secret):
        token = _login(api_client, client_principal.username, client_secret, "client")["access_token"]
        services.lifecycle.request_deletion(photographer, "collection", shared_collection["id"], "closing")

        response = api_client.get(
            "/api/authorize", params={"resource_id": photo["id"]}, headers=_bearer(token)
        )

        assert response.status_code == 410

    def test_admin_unknown_resource(self, api_client, admin):
        token = _login(api_client, "root-admin", ADMIN_PASSWORD)["access_token"]

        response = api_client.get(
            "/api/authorize", params={"resource_id": str(uuid.uuid4())}, headers=_bearer(token)
        )

        assert response.status_code == 404

    def test_malformed_resource_id(self, api_client, admin):
        token = _login(api_client, "root-admin", ADMIN_PASSWORD)["access_token"]

        response = api_client.get(
            "/api/authorize", params={"resource_id": "../etc/passwd"}, headers=_bearer(token)
        )

        assert response.status_code == 400


class TestCatalogEndpoints:

    def test_upload_and_public_read(self, api_client, photographer, collection):
        # Arrange
        token = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["access_token"]

        # Act
        upload = api_client.post(
            f"/api/collections/{collection['id']}/photos",
            files={"file": ("sunset.png", make_image_bytes("orange", fmt="PNG"), "image/png")},
            data={"title": "Sunset", "tags": "Beach, sunset"},
            headers=_bearer(token),
        )

        # Assert
        assert upload.status_code == 201, upload.text
        photo = upload.json()
        assert photo["tags"] == ["beach", "sunset"]
        assert photo["mime_type"] == "image/jpeg"

        public = api_client.get(f"/share/{photo['share_token']}")
        assert public.status_code == 200
        assert public.json()["title"] == "Sunset"

        image = api_client.get(f"/share/{photo['share_token']}/image")
        assert image.status_code == 200
        assert image.headers["content-type"] == "image/jpeg"

        thumbnail = api_client.get(f"/share/{photo['share_token']}/thumbnail")
        assert thumbnail.status_code == 200

    def test_upload_rejects_text_file(self, api_client, photographer, collection):
        token = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["access_token"]

        response = api_client.post(
            f"/api/collections/{collection['id']}/photos",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=_bearer(token),
        )

        assert response.status_code == 400

    def test_public_endpoint_rejects_ids(self, api_client, photo):
        response = api_client.get(f"/share/{photo['id']}")

        assert response.status_code == 400

    def test_public_pending_photo_not_found(self, api_client, services, photographer, photo):
        services.lifecycle.request_deletion(photographer, "photo", photo["id"], "blurry")

        response = api_client.get(f"/share/{photo['share_token']}")

        assert response.status_code == 404

    def test_client_lists_shared_collections(self, api_client, shared_collection, client_principal,
                                             client_secret):
        token = _login(api_client, client_principal.username, client_secret, "client")["access_token"]

        response = api_client.get("/api/collections", headers=_bearer(token))

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [shared_collection["id"]]

    def test_batch_upload_reports_rejected_files(self, api_client, photographer, collection):
        token = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["access_token"]

        response = api_client.post(
            f"/api/collections/{collection['id']}/photos/batch",
            files=[
                ("files", ("a.jpg", make_image_bytes("red"), "image/jpeg")),
                ("files", ("b.txt", b"hello", "text/plain")),
            ],
            data={"tags": "proofs"},
            headers=_bearer(token),
        )

        assert response.status_code == 201, response.text
        body = response.json()
        assert len(body["uploaded"]) == 1
        assert body["uploaded"][0]["tags"] == ["proofs"]
        assert [f["filename"] for f in body["failed"]] == ["b.txt"]

    def test_client_downloads_zip(self, api_client, shared_collection, photo, client_principal,
                                  client_secret):
        # Arrange
        token = _login(api_client, client_principal.username, client_secret, "client")["access_token"]

        # Act
        response = api_client.post(
            "/api/photos/archive", json={"share_tokens": [photo["share_token"]]}, headers=_bearer(token)
        )

        # Assert
        assert response.status_code == 200, response.text
        assert response.headers["content-type"] == "application/zip"
        assert response.headers["content-disposition"].startswith('attachment; filename="photos-')
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert archive.namelist() == ["First dance.jpg"]

    def test_zip_of_unshared_photo_denied(self, api_client, photo, client_principal, client_secret):
        token = _login(api_client, client_principal.username, client_secret, "client")["access_token"]

        response = api_client.post(
            "/api/photos/archive", json={"share_tokens": [photo["share_token"]]}, headers=_bearer(token)
        )

        assert response.status_code == 403


class TestAdminEndpoints:

    def test_sweep_requires_admin(self, api_client, photographer):
        token = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["access_token"]

        response = api_client.post("/api/admin/sweep", headers=_bearer(token))

        assert response.status_code == 403

    def test_admin_sweep_and_schedule(self, api_client, services, clock, admin, photographer, photo):
        # Arrange
        token = _login(api_client, "root-admin", ADMIN_PASSWORD)["access_token"]
        deleted = api_client.post(
            f"/api/lifecycle/photo/{photo['id']}/delete", json={"reason": "blurry"}, headers=_bearer(token)
        )
        scheduled = api_client.get("/api/admin/scheduled", headers=_bearer(token))
        clock.advance(days=7)
        token = _login(api_client, "root-admin", ADMIN_PASSWORD)["access_token"]

        # Act
        sweep = api_client.post("/api/admin/sweep", headers=_bearer(token))

        # Assert
        assert deleted.status_code == 200
        assert "credential_digest" not in deleted.json()
        assert [row["id"] for row in scheduled.json()] == [photo["id"]]
        assert sweep.status_code == 200
        assert sweep.json()["purged"] == {"photo": 1}

    def test_scheduler_status(self, api_client, admin):
        token = _login(api_client, "root-admin", ADMIN_PASSWORD)["access_token"]

        response = api_client.get("/api/admin/scheduler", headers=_bearer(token))

        assert response.status_code == 200
        assert response.json()["running"] is False

    def test_photographer_creates_client(self, api_client, photographer):
        token = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["access_token"]

        response = api_client.post(
            "/api/clients", json={"client_name": "Zoe", "email": "zoe@example.com"}, headers=_bearer(token)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["client"]["username"].startswith("CL")
        assert len(body["password"]) == 10

    def test_console_listings(self, api_client, admin, guest_share, photo):
        token = _login(api_client, "root-admin", ADMIN_PASSWORD)["access_token"]

        stats = api_client.get("/api/admin/stats", headers=_bearer(token))
        photographers = api_client.get("/api/admin/photographers", headers=_bearer(token))
        clients = api_client.get("/api/admin/clients", headers=_bearer(token))
        guests = api_client.get("/api/admin/guests", headers=_bearer(token))

        assert stats.status_code == 200
        assert stats.json()["total_photos"] == 1
        [north] = photographers.json()
        assert north["photo_count"] == 1
        assert [c["guest_count"] for c in clients.json()] == [1]
        assert [g["photo_access_count"] for g in guests.json()] == [1]

    def test_photographer_stats_endpoint(self, api_client, admin, photographer, photo):
        token = _login(api_client, "root-admin", ADMIN_PASSWORD)["access_token"]

        found = api_client.get(f"/api/admin/photographers/{photographer.id}/stats", headers=_bearer(token))
        missing = api_client.get(f"/api/admin/photographers/{uuid.uuid4()}/stats", headers=_bearer(token))

        assert found.status_code == 200
        assert found.json()["photo_count"] == 1
        assert missing.status_code == 404

    def test_console_requires_admin(self, api_client, photographer):
        token = _login(api_client, "studio-north", PHOTOGRAPHER_PASSWORD)["access_token"]

        response = api_client.get("/api/admin/stats", headers=_bearer(token))

        assert response.status_code == 403
