from datetime import timedelta

from sqlmodel import Session, select

from angelmarket import offers as offers_module
from angelmarket.models import NDA, InvestmentOffer, OfferStatus
from angelmarket.utils import utcnow


def _offer(client, investor, project_id, amount=25000, **fields):
    payload = {"project_id": project_id, "offer_amount": amount, "equity_request": 5, "terms_notes": "Standard terms"}
    payload.update(fields)
    return client.post("/api/offers", json=payload, headers=investor["headers"])


def test_offer_needs_nda_and_access(client, investor, sign_nda, make_project):
    project_id = make_project()
    no_nda = _offer(client, investor, project_id)
    assert no_nda.status_code == 403
    assert no_nda.json()["code"] == "NDA_REQUIRED"

    sign_nda(investor)
    no_payment = _offer(client, investor, project_id)
    assert no_payment.status_code == 403
    assert no_payment.json()["code"] == "PAYMENT_REQUIRED"


def test_create_offer_notifies_developer(client, unlocked_investor, developer, make_project, sent_emails):
    project_id = make_project(title="Grid Batteries")
    resp = _offer(client, unlocked_investor, project_id)
    assert resp.status_code == 201
    offer = resp.json()["offer"]
    assert offer["status"] == "pending"
    assert offer["project"]["title"] == "Grid Batteries"
    assert offer["expires_at"]

    assert sent_emails[-1]["to"] == developer["email"]
    assert "Grid Batteries" in sent_emails[-1]["subject"] + sent_emails[-1]["text"]


def test_offer_does_not_consume_a_view(client, unlocked_investor, make_project):
    project_id = make_project()
    assert _offer(client, unlocked_investor, project_id).status_code == 201
    status = client.get("/api/payments/status", headers=unlocked_investor["headers"]).json()
    assert status["projects_remaining"] == 4


def test_offer_below_minimum(client, unlocked_investor, make_project):
    project_id = make_project(min_investment=10000)
    resp = _offer(client, unlocked_investor, project_id, amount=9999)
    assert resp.status_code == 400
    assert resp.json()["code"] == "BELOW_MINIMUM_INVESTMENT"
    assert resp.json()["min_investment"] == 10000


def test_offer_on_unapproved_project(client, unlocked_investor, make_project):
    project_id = make_project(approve=False)
    assert _offer(client, unlocked_investor, project_id).status_code == 404


def test_one_pending_offer_per_project(client, unlocked_investor, make_project):
    project_id = make_project()
    assert _offer(client, unlocked_investor, project_id).status_code == 201
    dup = _offer(client, unlocked_investor, project_id, amount=30000)
    assert dup.status_code == 409
    assert dup.json()["code"] == "OFFER_ALREADY_PENDING"


def test_concurrent_duplicate_offer_is_rejected(client, test_engine, unlocked_investor, make_project, db_session, monkeypatch):
    project_id = make_project()
    real_expire_stale = offers_module.expire_stale

    def expire_then_race(session, offers, now=None):
        real_expire_stale(session, offers, now)
        # another request commits its offer right after the duplicate check
        with Session(test_engine) as other:
            other.add(InvestmentOffer(
                investor_id=unlocked_investor["id"],
                project_id=project_id,
                offer_amount=40000,
                expires_at=utcnow() + timedelta(days=7),
            ))
            other.commit()

    monkeypatch.setattr(offers_module, "expire_stale", expire_then_race)
    resp = _offer(client, unlocked_investor, project_id)
    assert resp.status_code == 409
    assert resp.json()["code"] == "OFFER_ALREADY_PENDING"

    pending = db_session.exec(
        select(InvestmentOffer).where(
            InvestmentOffer.project_id == project_id,
            InvestmentOffer.status == OfferStatus.PENDING,
        )
    ).all()
    assert [o.offer_amount for o in pending] == [40000]


def test_offer_expires_at_its_deadline():
    now = utcnow()
    offer = InvestmentOffer(investor_id=1, project_id=1, offer_amount=1000, expires_at=now)
    assert offer.is_expired(now)
    assert not offer.can_respond(now)
    assert not offer.is_expired(now - timedelta(seconds=1))
    assert not NDA(investor_id=1, signature_data="x", signed_name="x", expires_at=now).is_valid(now)


def test_accept_creates_term_sheet(client, unlocked_investor, developer, make_project, sent_emails):
    project_id = make_project(valuation_cap=3000000)
    offer_id = _offer(client, unlocked_investor, project_id).json()["offer"]["id"]

    resp = client.post(f"/api/offers/{offer_id}/respond", json={"action": "accept"}, headers=developer["headers"])
    assert resp.status_code == 200
    offer = resp.json()["offer"]
    assert offer["status"] == "accepted"
    assert offer["responded_at"]
    term_sheet = offer["term_sheet"]
    assert term_sheet["status"] == "draft"
    assert term_sheet["investment_amount"] == 25000
    assert term_sheet["valuation_cap"] == 3000000
    assert term_sheet["discount_rate"] == 20
    assert term_sheet["pro_rata_rights"] is True
    assert sent_emails[-1]["to"] == unlocked_investor["email"]

    again = client.post(f"/api/offers/{offer_id}/respond", json={"action": "reject"}, headers=developer["headers"])
    assert again.status_code == 409
    assert again.json()["code"] == "OFFER_NOT_RESPONDABLE"

    detail = client.get(f"/api/offers/{offer_id}", headers=unlocked_investor["headers"]).json()["offer"]
    assert detail["term_sheet"]["id"] == term_sheet["id"]


def test_accept_with_custom_terms(client, unlocked_investor, developer, make_project):
    project_id = make_project()
    offer_id = _offer(client, unlocked_investor, project_id).json()["offer"]["id"]
    resp = client.post(
        f"/api/offers/{offer_id}/respond",
        json={"action": "accept", "valuation_cap": 5000000, "discount_rate": 15},
        headers=developer["headers"],
    )
    term_sheet = resp.json()["offer"]["term_sheet"]
    assert term_sheet["valuation_cap"] == 5000000
    assert term_sheet["discount_rate"] == 15


def test_reject_offer(client, unlocked_investor, developer, make_project):
    project_id = make_project()
    offer_id = _offer(client, unlocked_investor, project_id).json()["offer"]["id"]
    resp = client.post(
        f"/api/offers/{offer_id}/respond",
        json={"action": "reject", "response_notes": "Too early for us"},
        headers=developer["headers"],
    )
    assert resp.status_code == 200
    assert resp.json()["offer"]["status"] == "rejected"
    assert "term_sheet" not in resp.json()["offer"]

    # a new offer is allowed once the previous one is closed
    assert _offer(client, unlocked_investor, project_id).status_code == 201


def test_only_owner_developer_responds(client, unlocked_investor, make_project, make_user):
    project_id = make_project()
    offer_id = _offer(client, unlocked_investor, project_id).json()["offer"]["id"]
    stranger = make_user("developer")
    resp = client.post(f"/api/offers/{offer_id}/respond", json={"action": "accept"}, headers=stranger["headers"])
    assert resp.status_code == 403


def test_expired_offer_cannot_be_answered(client, unlocked_investor, developer, make_project, db_session):
    project_id = make_project()
    offer_id = _offer(client, unlocked_investor, project_id).json()["offer"]["id"]
    offer = db_session.get(InvestmentOffer, offer_id)
    offer.expires_at = utcnow() - timedelta(minutes=1)
    db_session.add(offer)
    db_session.commit()

    resp = client.post(f"/api/offers/{offer_id}/respond", json={"action": "accept"}, headers=developer["headers"])
    assert resp.status_code == 409
    assert resp.json()["code"] == "OFFER_NOT_RESPONDABLE"

    db_session.expire_all()
    assert db_session.get(InvestmentOffer, offer_id).status == OfferStatus.EXPIRED

    # the expired offer no longer blocks a fresh one
    assert _offer(client, unlocked_investor, project_id).status_code == 201


def test_withdraw(client, unlocked_investor, developer, make_project):
    project_id = make_project()
    offer_id = _offer(client, unlocked_investor, project_id).json()["offer"]["id"]

    resp = client.delete(f"/api/offers/{offer_id}", headers=unlocked_investor["headers"])
    assert resp.status_code == 200
    assert resp.json()["offer"]["status"] == "withdrawn"

    again = client.delete(f"/api/offers/{offer_id}", headers=unlocked_investor["headers"])
    assert again.status_code == 409
    assert again.json()["code"] == "OFFER_NOT_WITHDRAWABLE"

    respond = client.post(f"/api/offers/{offer_id}/respond", json={"action": "accept"}, headers=developer["headers"])
    assert respond.status_code == 409


def test_offer_listings_by_role(client, unlocked_investor, developer, make_project, make_user, admin_headers):
    project_id = make_project(title="Listed Project")
    offer_id = _offer(client, unlocked_investor, project_id).json()["offer"]["id"]

    mine = client.get("/api/offers", headers=unlocked_investor["headers"]).json()["offers"]
    assert [o["id"] for o in mine] == [offer_id]

    received = client.get("/api/developer/offers", headers=developer["headers"]).json()["offers"]
    assert [o["id"] for o in received] == [offer_id]
    assert received[0]["investor"]["email"] == unlocked_investor["email"]

    other = make_user("developer")
    assert client.get("/api/offers", headers=other["headers"]).json()["offers"] == []
    assert client.get(f"/api/offers/{offer_id}", headers=other["headers"]).status_code == 403

    everything = client.get("/api/admin/offers", headers=admin_headers).json()["offers"]
    assert [o["id"] for o in everything] == [offer_id]

    projects = client.get("/api/developer/projects", headers=developer["headers"]).json()["projects"]
    assert projects[0]["pending_offers"] == 1
