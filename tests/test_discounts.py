"""Tests for discount quoting, redemption, campaigns and the admin code editor."""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from werkzeug.security import generate_password_hash

from app.campus import create_app
from app.campus.db import session_scope
from app.campus.models import AuditEvent, Base, Permission, Role, User
from app.campus.modules.courses.models import Course
from app.campus.modules.discounts.models import DiscountCode, DiscountRedemption
from app.campus.modules.discounts.service import (
    DiscountError,
    campaign_view,
    compute_discount,
    normalize_discount_payload,
    redeem_discount,
    validate_discount_payload,
)

CSRF = "test-token"
HEADERS = {"X-CSRF-Token": CSRF}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    future = datetime.utcnow() + timedelta(days=30)
    with session_scope(app) as s:
        p = Permission(key="discounts.manage", name="Discounts: codes and campaigns")
        r = Role(key="admin", name="Administrator")
        r.permissions.append(p)
        admin = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        admin.roles.append(r)
        ada = User(email="ada@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([p, r, admin, ada])

        python = Course(slug="python-101", title="Python 101", price=Decimal("200.00"))
        data = Course(slug="data-101", title="Data 101", price=Decimal("80.00"))
        s.add_all([python, data])
        s.flush()

        s.add_all(
            [
                DiscountCode(code="SAVE10", discount_type="percentage", discount_amount=Decimal("10"), valid_until=future, max_usage=2),
                DiscountCode(code="FLAT50", discount_type="fixed", discount_amount=Decimal("50"), valid_until=future),
                DiscountCode(code="OLD", discount_type="fixed", discount_amount=Decimal("5"), valid_until=datetime.utcnow() - timedelta(days=1)),
                DiscountCode(
                    code="DATAONLY",
                    discount_type="percentage",
                    discount_amount=Decimal("20"),
                    valid_until=future,
                    applicable_course_ids=[data.id],
                ),
                DiscountCode(
                    code="GIFT",
                    discount_type="fixed",
                    discount_amount=Decimal("0"),
                    valid_until=future,
                    max_usage=10,
                    has_balance_limit=True,
                    remaining_balance=Decimal("120.00"),
                    initial_balance=Decimal("120.00"),
                ),
                DiscountCode(code="FRIEND", discount_type="percentage", discount_amount=Decimal("15"), valid_until=future, is_referral=True),
                DiscountCode(
                    code="SPRING",
                    discount_type="percentage",
                    discount_amount=Decimal("20.00"),
                    valid_until=future,
                    max_usage=100,
                    is_campaign=True,
                    campaign_name="Bahar Kampanyası",
                    campaign_name_en="Spring Sale",
                    campaign_slug="spring",
                ),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _csrf(client):
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _login(client, email="ada@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)
    _csrf(client)


def _course_id(app, slug="python-101"):
    with session_scope(app) as s:
        return s.query(Course.id).filter(Course.slug == slug).scalar()


def test_quote_percentage_and_fixed(app, client):
    _csrf(client)
    cid = _course_id(app)

    r = client.post("/api/discounts/quote", json={"code": "save10", "course_id": cid}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json["code"] == "SAVE10"
    assert r.json["discount_amount"] == 20.0
    assert r.json["original_price"] == 200.0
    assert r.json["final_price"] == 180.0

    r = client.post("/api/discounts/quote", json={"code": "FLAT50", "course_id": _course_id(app, "data-101")}, headers=HEADERS)
    assert r.json["final_price"] == 30.0


def test_quote_rejections(app, client):
    _csrf(client)
    cid = _course_id(app)

    r = client.post("/api/discounts/quote", json={"code": "NOPE", "course_id": cid}, headers=HEADERS)
    assert r.status_code == 404
    assert r.json["code"] == "invalid_code"

    r = client.post("/api/discounts/quote", json={"code": "FRIEND", "course_id": cid}, headers=HEADERS)
    assert r.json["code"] == "invalid_code"

    r = client.post("/api/discounts/quote", json={"code": "OLD", "course_id": cid}, headers=HEADERS)
    assert r.status_code == 400
    assert r.json["code"] == "expired"

    r = client.post("/api/discounts/quote", json={"code": "DATAONLY", "course_id": cid}, headers=HEADERS)
    assert r.json["code"] == "not_applicable"

    r = client.post("/api/discounts/quote", json={"code": "", "course_id": cid}, headers=HEADERS)
    assert r.status_code == 400

    r = client.post("/api/discounts/quote", json={"code": "SAVE10", "course_id": "x"}, headers=HEADERS)
    assert r.status_code == 400


def test_redeem_counts_usage_until_limit(app, client):
    r = client.post("/api/discounts/redeem", json={"code": "SAVE10", "course_id": 1}, headers=HEADERS)
    assert r.status_code in (400, 401)

    _login(client)
    cid = _course_id(app)
    r = client.post("/api/discounts/redeem", json={"code": "SAVE10", "course_id": cid}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json["amount"] == 20.0
    assert r.json["usage_count"] == 1

    client.post("/api/discounts/redeem", json={"code": "SAVE10", "course_id": cid}, headers=HEADERS)
    r = client.post("/api/discounts/redeem", json={"code": "SAVE10", "course_id": cid}, headers=HEADERS)
    assert r.status_code == 400
    assert r.json["code"] == "limit_reached"

    with session_scope(app) as s:
        dc = s.query(DiscountCode).filter(DiscountCode.code == "SAVE10").one()
        assert dc.usage_count == 2
        assert dc.is_used is True
        assert s.query(DiscountRedemption).count() == 2
        assert s.query(AuditEvent).filter(AuditEvent.action == "discount.redeem").count() == 2


def test_balance_limited_code_drains(app, client):
    _login(client)
    cid = _course_id(app)

    r = client.post("/api/discounts/redeem", json={"code": "gift", "course_id": cid}, headers=HEADERS)
    assert r.json["amount"] == 120.0
    assert r.json["remaining_balance"] == 0.0

    r = client.post("/api/discounts/quote", json={"code": "GIFT", "course_id": cid}, headers=HEADERS)
    assert r.json["code"] == "balance_exhausted"


def test_redeem_explicit_amount_checks_balance(app):
    with session_scope(app) as s:
        user = s.query(User).filter(User.email == "ada@example.com").one()
        course = s.query(Course).filter(Course.slug == "data-101").one()
        redemption = redeem_discount(s, "GIFT", user, course, amount=Decimal("100"))
        assert redemption.discount_code.remaining_balance == Decimal("20.00")

        with pytest.raises(DiscountError) as exc:
            redeem_discount(s, "GIFT", user, course, amount=Decimal("25"))
        assert exc.value.code == "insufficient_balance"

        with pytest.raises(DiscountError) as exc:
            redeem_discount(s, "GIFT", user, course, amount=Decimal("-1"))
        assert exc.value.code == "invalid_amount"


def test_early_bird_price_is_discounted(app, client):
    with session_scope(app) as s:
        c = s.query(Course).filter(Course.slug == "python-101").one()
        c.early_bird_price = Decimal("150.00")
        c.early_bird_deadline = datetime.utcnow() + timedelta(days=1)
    _csrf(client)
    r = client.post("/api/discounts/quote", json={"code": "SAVE10", "course_id": _course_id(app)}, headers=HEADERS)
    assert r.json["original_price"] == 150.0
    assert r.json["discount_amount"] == 15.0


def test_campaign_pages_and_api(client):
    r = client.get("/api/campaigns")
    campaigns = r.json["campaigns"]
    assert [c["slug"] for c in campaigns] == ["spring"]
    assert campaigns[0]["title"] == "Bahar Kampanyası"
    assert campaigns[0]["description"] == "%20 indirim kodu"
    assert campaigns[0]["is_active"] is True

    r = client.get("/api/campaigns/spring?locale=en")
    assert r.json["campaign"]["title"] == "Spring Sale"
    assert r.json["campaign"]["description"] == "20% discount code"

    r = client.get("/api/campaigns/winter")
    assert r.status_code == 404
    assert r.json["error"] == "Campaign not found."

    r = client.get("/campaigns")
    assert r.status_code == 200
    assert b"SPRING" in r.data
    assert client.get("/campaigns/spring").status_code == 200
    assert client.get("/campaigns/winter").status_code == 404


def test_admin_create_edit_delete(app, client):
    _login(client, "admin@example.com")
    assert client.get("/admin/discounts").status_code == 200

    r = client.post(
        "/admin/discounts/new",
        data={
            "csrf_token": CSRF,
            "code": "summer25",
            "discount_type": "percentage",
            "discount_amount": "25",
            "valid_until": "2030-09-01",
            "max_usage": "5",
            "is_campaign": "on",
            "campaign_name": "Yaz İndirimi",
        },
        follow_redirects=True,
    )
    assert b"Discount code SUMMER25 created." in r.data
    with session_scope(app) as s:
        dc = s.query(DiscountCode).filter(DiscountCode.code == "SUMMER25").one()
        assert dc.campaign_slug == "yaz-indirimi"
        assert dc.max_usage == 5
        code_id = dc.id

    r = client.post(
        "/admin/discounts/new",
        data={"csrf_token": CSRF, "code": "SAVE10", "discount_amount": "5", "valid_until": "2030-09-01"},
        follow_redirects=True,
    )
    assert b"Discount code SAVE10 already exists." in r.data

    r = client.post(
        f"/admin/discounts/{code_id}/edit",
        data={"csrf_token": CSRF, "code": "SUMMER25", "discount_amount": "30", "valid_until": "2030-09-01"},
        follow_redirects=True,
    )
    assert b"Discount code updated." in r.data

    r = client.post(f"/admin/discounts/{code_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"Tick the confirmation box" in r.data

    r = client.post(f"/admin/discounts/{code_id}/delete", data={"csrf_token": CSRF, "confirm": "on"}, follow_redirects=True)
    assert b"Discount code SUMMER25 deleted." in r.data
    with session_scope(app) as s:
        assert s.query(DiscountCode).filter(DiscountCode.code == "SUMMER25").count() == 0


def test_admin_edit_rejects_taken_campaign_slug(app, client):
    _login(client, "admin@example.com")
    client.post(
        "/admin/discounts/new",
        data={
            "csrf_token": CSRF,
            "code": "SUMMER25",
            "discount_amount": "25",
            "valid_until": "2030-09-01",
            "is_campaign": "on",
            "campaign_name": "Yaz İndirimi",
        },
        follow_redirects=True,
    )
    with session_scope(app) as s:
        code_id = s.query(DiscountCode.id).filter(DiscountCode.code == "SUMMER25").scalar()

    r = client.post(
        f"/admin/discounts/{code_id}/edit",
        data={
            "csrf_token": CSRF,
            "code": "SUMMER25",
            "discount_amount": "25",
            "valid_until": "2030-09-01",
            "is_campaign": "on",
            "campaign_name": "Yaz İndirimi",
            "campaign_slug": "spring",
        },
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Campaign slug spring is already used." in r.data
    with session_scope(app) as s:
        assert s.get(DiscountCode, code_id).campaign_slug == "yaz-indirimi"

    # Saving a code with its own slug is not a conflict.
    r = client.post(
        f"/admin/discounts/{code_id}/edit",
        data={
            "csrf_token": CSRF,
            "code": "SUMMER25",
            "discount_amount": "30",
            "valid_until": "2030-09-01",
            "is_campaign": "on",
            "campaign_name": "Yaz İndirimi",
            "campaign_slug": "yaz-indirimi",
        },
        follow_redirects=True,
    )
    assert b"Discount code updated." in r.data


def test_admin_requires_permission(client):
    _login(client)
    assert client.get("/admin/discounts").status_code == 403


def test_payload_validation_and_normalisation():
    errors = validate_discount_payload({"code": "", "discount_type": "percentage", "discount_amount": "150"})
    assert "Code is required." in errors
    assert "A percentage discount cannot exceed 100." in errors
    assert "Valid until date is required." in errors
    assert "Applicable courses must be a list of course ids." in validate_discount_payload(
        {"code": "X", "discount_amount": "1", "valid_until": "2030-01-01", "applicable_course_ids": "1, a"}
    )

    values = normalize_discount_payload(
        {"code": " abc ", "discount_amount": "10", "valid_until": "2030-01-01", "max_usage": "0", "applicable_course_ids": "1, 2"}
    )
    assert values["code"] == "ABC"
    assert values["max_usage"] == 1
    assert values["applicable_course_ids"] == [1, 2]
    assert values["campaign_slug"] is None


def test_compute_discount_and_campaign_view():
    dc = DiscountCode(code="X", discount_type="fixed", discount_amount=Decimal("500"), has_balance_limit=False)
    assert compute_discount(dc, Decimal("120")) == Decimal("120.00")
    assert compute_discount(dc, Decimal("0")) == Decimal("0.00")

    dc = DiscountCode(
        code="TL",
        discount_type="fixed",
        discount_amount=Decimal("75"),
        valid_until=datetime(2020, 1, 1),
        usage_count=0,
        max_usage=1,
        is_used=False,
    )
    view = campaign_view(dc, "tr", now=datetime(2025, 1, 1))
    assert view["description"] == "75 TL indirim kodu"
    assert view["is_active"] is False
    assert view["cover_image"] == "/static/img/campaign-default.jpg"
