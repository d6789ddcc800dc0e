"""
tests/test_api_routes.py -- Integration tests for the /api/v1 routes.

These tests exercise the full stack: FastAPI routing -> auth dependency
injection -> workflows -> stores -> response model serialization, with mail
captured by the RecordingTransport from conftest.

Coverage:
  - health endpoint, no auth
  - register -> confirm -> login -> me round trip; cookie and Bearer auth
  - error envelope and status mapping: 422 invalid credential, 409 duplicate,
    400 link_invalid, 401 bad credentials / unauthenticated
  - password reset over HTTP; unknown email answers 202 as well
  - teams: create, invite, accept
  - models: create, private visibility, ownership transfer
  - assets: mint, upload, download; PENDING is 404; content sniffing
  - upload storage helper: blob and temp file cleanup on rejection

Fixtures used (from conftest.py):
  - api_client: (client, transport) -- one TestClient per module, so every
    test registers users with names of its own.
"""

from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from api.routes.v1.assets import _store_upload
from catalog.inspection import PseudoInspector, Verdict
from catalog.models import AssetState
from catalog.storage import LocalBlobStorage
from catalog.store import CatalogStore
from catalog.uploads import UploadLifecycle
from core.results import FileInfected

PASSWORD = "Secret#Pass1"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _signup(client: TestClient, transport, name: str) -> dict[str, str]:
    """Register, confirm and log in a user; return Bearer headers."""
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": f"{name}@example.com", "password": PASSWORD},
    )
    assert resp.status_code == 201, resp.text
    assert client.post("/api/v1/auth/confirm-email", json={"token": transport.last_token()}).status_code == 200
    login = client.post("/api/v1/auth/login", json={"email": f"{name}@example.com", "password": PASSWORD})
    assert login.status_code == 200, login.text
    # Bearer only: keep the module-scoped client free of session cookies.
    client.cookies.clear()
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


class TestHealth:
    def test_health_no_auth_required(self, api_client) -> None:
        client, _ = api_client
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestAccountRoutes:
    def test_register_confirm_login_me(self, api_client) -> None:
        client, transport = api_client
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "roundtrip", "email": "roundtrip@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["confirmation_sent"] is True
        assert body["user"]["is_email_verified"] is False
        assert "token" not in resp.text

        confirm = client.post("/api/v1/auth/confirm-email", json={"token": transport.last_token()})
        assert confirm.status_code == 200
        assert confirm.json()["is_email_verified"] is True

        login = client.post("/api/v1/auth/login", json={"email": "roundtrip@example.com", "password": PASSWORD})
        assert login.status_code == 200
        assert login.headers["Cache-Control"] == "no-store"
        assert "access_token" in login.cookies

        me = client.get("/api/v1/auth/me")  # cookie auth
        assert me.status_code == 200
        assert me.json()["name"] == "roundtrip"

        client.post("/api/v1/auth/logout")
        client.cookies.clear()
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_bearer_auth(self, api_client) -> None:
        client, transport = api_client
        headers = _signup(client, transport, "bearer")
        resp = client.get("/api/v1/auth/me", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["email"] == "bearer@example.com"

    def test_invalid_email_is_422(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/register", json={"name": "badmail", "email": "nope", "password": PASSWORD})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "invalid_credential"
        assert error["detail"] == "email"

    def test_duplicate_is_409(self, api_client) -> None:
        client, transport = api_client
        _signup(client, transport, "dupe")
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "dupe2", "email": "dupe@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_exists"

    def test_bad_link_is_400_link_invalid(self, api_client) -> None:
        client, _ = api_client
        resp = client.post("/api/v1/auth/confirm-email", json={"token": "not-a-real-token"})
        assert resp.status_code == 400
        assert resp.json()["error"] == {
            "code": "link_invalid",
            "message": "This link is invalid or has expired.",
            "detail": None,
        }

    def test_wrong_password_is_401(self, api_client) -> None:
        client, transport = api_client
        _signup(client, transport, "wrongpw")
        resp = client.post("/api/v1/auth/login", json={"email": "wrongpw@example.com", "password": "Nope#Nope1"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_password_reset_flow(self, api_client) -> None:
        client, transport = api_client
        _signup(client, transport, "resetter")

        resp = client.post("/api/v1/auth/password-reset", json={"email": "resetter@example.com"})
        assert resp.status_code == 202
        token = transport.last_token()

        weak = client.post("/api/v1/auth/password-reset/confirm", json={"token": token, "password": "weak"})
        assert weak.status_code == 422

        done = client.post("/api/v1/auth/password-reset/confirm", json={"token": token, "password": "Brand#New2"})
        assert done.status_code == 200
        login = client.post("/api/v1/auth/login", json={"email": "resetter@example.com", "password": "Brand#New2"})
        assert login.status_code == 200
        client.cookies.clear()

    def test_password_reset_unknown_email_is_202(self, api_client) -> None:
        client, transport = api_client
        sent_before = len(transport.sent)
        resp = client.post("/api/v1/auth/password-reset", json={"email": "ghost@example.com"})
        assert resp.status_code == 202
        assert len(transport.sent) == sent_before


class TestTeamRoutes:
    def test_unauthenticated(self, api_client) -> None:
        client, _ = api_client
        assert client.post("/api/v1/teams", json={"name": "nobody"}).status_code == 401

    def test_create_invite_accept(self, api_client) -> None:
        client, transport = api_client
        owner = _signup(client, transport, "teamowner")
        member = _signup(client, transport, "teammember")

        created = client.post("/api/v1/teams", json={"name": "Mobility Lab"}, headers=owner)
        assert created.status_code == 201
        team = created.json()
        assert len(team["member_ids"]) == 1

        forbidden = client.post(
            f"/api/v1/teams/{team['id']}/invitations", json={"email": "x@example.com"}, headers=member
        )
        assert forbidden.status_code == 403

        invited = client.post(
            f"/api/v1/teams/{team['id']}/invitations", json={"email": "teammember@example.com"}, headers=owner
        )
        assert invited.status_code == 202

        accepted = client.post("/api/v1/teams/invitations/accept", json={"token": transport.last_token()}, headers=member)
        assert accepted.status_code == 200
        assert len(accepted.json()["member_ids"]) == 2


class TestModelRoutes:
    def test_private_model_hidden_from_others(self, api_client) -> None:
        client, transport = api_client
        owner = _signup(client, transport, "modelowner")
        other = _signup(client, transport, "modelother")

        created = client.post("/api/v1/models", json={"name": "Private net"}, headers=owner)
        assert created.status_code == 201
        model_id = created.json()["id"]

        assert client.get(f"/api/v1/models/{model_id}", headers=owner).status_code == 200
        assert client.get(f"/api/v1/models/{model_id}", headers=other).status_code == 404
        assert client.get(f"/api/v1/models/{model_id}").status_code == 404

    def test_public_model_visible_anonymously(self, api_client) -> None:
        client, transport = api_client
        owner = _signup(client, transport, "publicowner")
        created = client.post(
            "/api/v1/models", json={"name": "Open net", "is_visibility_public": True}, headers=owner
        ).json()
        assert client.get(f"/api/v1/models/{created['id']}").status_code == 200

    def test_ownership_transfer(self, api_client) -> None:
        client, transport = api_client
        giver = _signup(client, transport, "giver")
        taker = _signup(client, transport, "taker")
        model = client.post("/api/v1/models", json={"name": "Gift"}, headers=giver).json()

        resp = client.post(
            f"/api/v1/models/{model['id']}/ownership-transfer",
            json={"target_email": "taker@example.com"},
            headers=giver,
        )
        assert resp.status_code == 202

        accepted = client.post(
            "/api/v1/models/ownership-transfer/accept", json={"token": transport.last_token()}, headers=taker
        )
        assert accepted.status_code == 200
        assert accepted.json()["owner_user_id"] == client.get("/api/v1/auth/me", headers=taker).json()["id"]

        again = client.post(
            f"/api/v1/models/{model['id']}/ownership-transfer",
            json={"target_email": "taker@example.com"},
            headers=giver,
        )
        assert again.status_code == 403

    def test_transfer_needs_one_target(self, api_client) -> None:
        client, transport = api_client
        owner = _signup(client, transport, "twotargets")
        model = client.post("/api/v1/models", json={"name": "Twice"}, headers=owner).json()
        resp = client.post(f"/api/v1/models/{model['id']}/ownership-transfer", json={}, headers=owner)
        assert resp.status_code == 422


class TestAssetRoutes:
    def test_upload_and_download(self, api_client) -> None:
        client, transport = api_client
        headers = _signup(client, transport, "uploader")

        minted = client.post("/api/v1/assets", json={"name": "cover", "extension": "png"}, headers=headers)
        assert minted.status_code == 201
        token = minted.json()["token"]
        assert minted.json()["state"] == "PENDING"

        assert client.get(f"/api/v1/assets/{token}").status_code == 404

        uploaded = client.put(
            f"/api/v1/assets/{token}/content",
            files={"file": ("cover.png", PNG_BYTES, "image/png")},
            headers=headers,
        )
        assert uploaded.status_code == 200, uploaded.text
        assert uploaded.json()["state"] == "STORED"

        download = client.get(f"/api/v1/assets/{token}")
        assert download.status_code == 200
        assert download.headers["content-type"] == "image/png"
        assert download.content == PNG_BYTES

    def test_content_must_match_extension(self, api_client) -> None:
        client, transport = api_client
        headers = _signup(client, transport, "mismatch")
        token = client.post("/api/v1/assets", json={"name": "pic", "extension": "jpg"}, headers=headers).json()["token"]
        resp = client.put(
            f"/api/v1/assets/{token}/content",
            files={"file": ("pic.jpg", PNG_BYTES, "image/jpeg")},
            headers=headers,
        )
        assert resp.status_code == 415
        assert resp.json()["error"]["code"] == "content_mismatch"

    def test_unsupported_extension(self, api_client) -> None:
        client, transport = api_client
        headers = _signup(client, transport, "exeuser")
        resp = client.post("/api/v1/assets", json={"name": "tool", "extension": "exe"}, headers=headers)
        assert resp.status_code == 400

    def test_mint_requires_auth(self, api_client) -> None:
        client, _ = api_client
        assert client.post("/api/v1/assets", json={"name": "x", "extension": "png"}).status_code == 401


class TestStoreUpload:
    """_store_upload runs in a worker thread; it must clean up after itself."""

    class _Rejecting:
        def __init__(self) -> None:
            self.seen: list[Path] = []

        def inspect(self, path: Path) -> Verdict:
            self.seen.append(path)
            return Verdict.NOT_CLEAN

    def test_rejected_upload_removes_blob_and_temp_file(self, catalog: CatalogStore, tmp_path: Path) -> None:
        inspector = self._Rejecting()
        uploads = UploadLifecycle(catalog, inspector)
        storage = LocalBlobStorage(tmp_path / "blobs")
        asset = uploads.mint("cover", "png")

        result = _store_upload(storage, uploads, asset.token, "png", PNG_BYTES)

        assert result == FileInfected(asset.token)
        assert not inspector.seen[0].exists()
        assert not (tmp_path / "blobs" / asset.token[:2] / asset.token).exists()
        assert catalog.get_asset(asset.token).state is AssetState.PENDING

    def test_clean_upload_is_stored(self, catalog: CatalogStore, tmp_path: Path) -> None:
        uploads = UploadLifecycle(catalog, PseudoInspector())
        storage = LocalBlobStorage(tmp_path / "blobs")
        asset = uploads.mint("cover", "png")

        result = _store_upload(storage, uploads, asset.token, "png", PNG_BYTES)

        assert result.ok
        with storage.open(uploads.retrievable_marker(asset.token)) as blob:
            assert blob.read() == PNG_BYTES
