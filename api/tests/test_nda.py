from angelmarket.documents import NDA_TEMPLATE_HASH
from angelmarket.routers import nda as nda_router

from conftest import SIGNATURE_DATA_URL


def test_template_is_versioned(client, investor):
    resp = client.get("/api/nda/template", headers=investor["headers"])
    assert resp.status_code == 200
    body = resp.json()
    assert body["version"] == "1.0"
    assert body["document_hash"] == NDA_TEMPLATE_HASH
    assert "NON-DISCLOSURE AGREEMENT" in body["template"].upper()


def test_developers_cannot_use_nda_routes(client, developer):
    assert client.get("/api/nda/template", headers=developer["headers"]).status_code == 403


def test_status_before_and_after_signing(client, investor, sign_nda):
    before = client.get("/api/nda/status", headers=investor["headers"]).json()
    assert before["signed"] is False
    assert before["valid"] is False

    signed = sign_nda(investor)
    assert signed["version"] == "1.0"
    assert signed["has_document"] is True

    after = client.get("/api/nda/status", headers=investor["headers"]).json()
    assert after["signed"] is True
    assert after["valid"] is True
    assert after["expires_at"] > after["signed_at"]


def test_must_agree(client, investor):
    resp = client.post(
        "/api/nda/sign",
        json={"signature_data": SIGNATURE_DATA_URL, "signed_name": "Ivy", "agreed": False},
        headers=investor["headers"],
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "NDA_NOT_AGREED"


def test_cannot_sign_twice_while_valid(client, investor, sign_nda):
    sign_nda(investor)
    resp = client.post(
        "/api/nda/sign",
        json={"signature_data": SIGNATURE_DATA_URL, "signed_name": "Ivy", "agreed": True},
        headers=investor["headers"],
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "NDA_ALREADY_SIGNED"


def test_signed_copy_is_archived(client, investor, sign_nda, mock_storage):
    sign_nda(investor)
    archived = [key for key in mock_storage if key.startswith("documents/ndas/")]
    assert len(archived) == 1
    assert mock_storage[archived[0]].startswith(b"%PDF")


def test_archive_failure_keeps_nda(client, investor, sign_nda, monkeypatch):
    def broken_put(*args, **kwargs):
        raise RuntimeError("storage offline")

    monkeypatch.setattr(nda_router, "put_bytes", broken_put)
    signed = sign_nda(investor)
    assert signed["has_document"] is False
    assert client.get("/api/nda/status", headers=investor["headers"]).json()["valid"] is True


def test_download(client, investor, sign_nda):
    assert client.get("/api/nda/download", headers=investor["headers"]).status_code == 404

    sign_nda(investor)
    resp = client.get("/api/nda/download", headers=investor["headers"])
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")
