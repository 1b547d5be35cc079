from datetime import timedelta

import pytest
from sqlmodel import Session, select

from angelmarket import gates
from angelmarket.errors import APIError
from angelmarket.gates import consume_view_credit, remaining_views
from angelmarket.models import NDA, Payment, Project, ProjectView
from angelmarket.utils import utcnow


def test_nda_required_before_anything(client, investor, make_project):
    project_id = make_project(title="Quiet Robotics", pitch_content="# Secret")
    resp = client.get(f"/api/projects/{project_id}", headers=investor["headers"])
    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "NDA_REQUIRED"
    assert body["full_access"] is False
    assert body["project"]["title"] == "Quiet Robotics"
    assert "pitch_content" not in body["project"]


def test_expired_nda_is_rejected(client, investor, sign_nda, make_project, db_session):
    project_id = make_project()
    sign_nda(investor)
    nda = db_session.exec(select(NDA).where(NDA.investor_id == investor["id"])).one()
    nda.expires_at = utcnow() - timedelta(days=1)
    db_session.add(nda)
    db_session.commit()

    resp = client.get(f"/api/projects/{project_id}", headers=investor["headers"])
    assert resp.status_code == 403
    assert resp.json()["code"] == "NDA_EXPIRED"


def test_nda_validity_window():
    now = utcnow()
    assert NDA(investor_id=1, signature_data="x", signed_name="x", expires_at=now + timedelta(days=1)).is_valid(now)
    assert not NDA(investor_id=1, signature_data="x", signed_name="x", expires_at=now - timedelta(seconds=1)).is_valid(now)
    assert NDA(investor_id=1, signature_data="x", signed_name="x", expires_at=None).is_valid(now)


def test_payment_required_after_nda(client, investor, sign_nda, make_project):
    project_id = make_project()
    sign_nda(investor)
    resp = client.get(f"/api/projects/{project_id}", headers=investor["headers"])
    assert resp.status_code == 403
    assert resp.json()["code"] == "PAYMENT_REQUIRED"
    assert resp.json()["project"]["id"] == project_id


def test_repeat_view_is_free(client, unlocked_investor, make_project, db_session):
    project_id = make_project(pitch_content="# The plan")
    headers = unlocked_investor["headers"]

    first = client.get(f"/api/projects/{project_id}", headers=headers)
    assert first.status_code == 200
    body = first.json()
    assert body["full_access"] is True
    assert body["already_viewed"] is False
    assert body["projects_remaining"] == 3
    assert body["project"]["pitch_content"] == "# The plan"

    second = client.get(f"/api/projects/{project_id}", headers=headers)
    assert second.status_code == 200
    assert second.json()["already_viewed"] is True
    assert second.json()["projects_remaining"] == 3

    assert db_session.get(Project, project_id).view_count == 1


def test_credits_run_out_after_bundle(client, unlocked_investor, make_project):
    headers = unlocked_investor["headers"]
    project_ids = [make_project() for _ in range(5)]

    for expected_remaining, project_id in zip([3, 2, 1, 0], project_ids):
        resp = client.get(f"/api/projects/{project_id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["projects_remaining"] == expected_remaining

    blocked = client.get(f"/api/projects/{project_ids[4]}", headers=headers)
    assert blocked.status_code == 403
    assert blocked.json()["code"] == "NO_VIEWS_REMAINING"
    assert blocked.json()["projects_remaining"] == 0

    # projects already unlocked stay open
    again = client.get(f"/api/projects/{project_ids[0]}", headers=headers)
    assert again.status_code == 200
    assert again.json()["projects_remaining"] == 0


def test_new_bundle_after_exhaustion(client, unlocked_investor, make_project, buy_views):
    headers = unlocked_investor["headers"]
    project_ids = [make_project() for _ in range(5)]
    for project_id in project_ids[:4]:
        assert client.get(f"/api/projects/{project_id}", headers=headers).status_code == 200

    buy_views(unlocked_investor)
    resp = client.get(f"/api/projects/{project_ids[4]}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["projects_remaining"] == 3


def test_consume_view_credit_charges_once(client, unlocked_investor, make_project, db_session):
    project_id = make_project()
    investor_id = unlocked_investor["id"]

    assert consume_view_credit(db_session, investor_id, project_id) is True
    assert consume_view_credit(db_session, investor_id, project_id) is False

    db_session.expire_all()
    payment = db_session.exec(select(Payment).where(Payment.investor_id == investor_id)).one()
    assert payment.projects_remaining == 3
    assert remaining_views(db_session, investor_id) == 3


def test_bundle_drained_concurrently_is_not_charged(client, test_engine, unlocked_investor, make_project, db_session, monkeypatch):
    project_id = make_project()
    investor_id = unlocked_investor["id"]
    stale = db_session.exec(select(Payment).where(Payment.investor_id == investor_id)).one()
    assert stale.projects_remaining == 4

    with Session(test_engine) as other:
        payment = other.get(Payment, stale.id)
        payment.projects_remaining = 0
        other.add(payment)
        other.commit()

    monkeypatch.setattr(gates, "check_payment", lambda session, investor_id: [stale])
    with pytest.raises(APIError) as exc:
        consume_view_credit(db_session, investor_id, project_id)
    assert exc.value.code == "NO_VIEWS_REMAINING"

    db_session.rollback()
    db_session.expire_all()
    assert db_session.get(Payment, stale.id).projects_remaining == 0
    assert db_session.exec(select(ProjectView).where(ProjectView.investor_id == investor_id)).all() == []


def test_timestamps_come_back_timezone_aware(client, unlocked_investor, db_session):
    db_session.expire_all()
    nda = db_session.exec(select(NDA).where(NDA.investor_id == unlocked_investor["id"])).one()
    assert nda.signed_at.tzinfo is not None
    assert nda.expires_at.utcoffset() == timedelta(0)
    assert nda.is_valid()


def test_unapproved_project_hidden_from_investors(client, unlocked_investor, make_project):
    project_id = make_project(approve=False)
    resp = client.get(f"/api/projects/{project_id}", headers=unlocked_investor["headers"])
    assert resp.status_code == 404


def test_viewed_projects_listing(client, unlocked_investor, make_project):
    project_id = make_project(title="Listed Once")
    client.get(f"/api/projects/{project_id}", headers=unlocked_investor["headers"])
    client.get(f"/api/projects/{project_id}", headers=unlocked_investor["headers"])

    views = client.get("/api/payments/viewed", headers=unlocked_investor["headers"]).json()["views"]
    assert [v["title"] for v in views] == ["Listed Once"]
