from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from io import BytesIO

from app.core.extensions import db
from app.core.models import Booking, FuneralKit, FuneralKitUsage, KitType, Package, Payment, Plot, PlotStatus, User, Waqaf, WaqafStatus
from conftest import booking_payload, staff_id


def _create(client, **kwargs):
    return client.post("/api/bookings", json=booking_payload(**kwargs))


def test_public_catalogue_endpoints(app, client):
    plots = client.get("/api/plots").get_json()["plots"]
    assert [p["plot_identifier"] for p in plots[:3]] == ["A1-1", "A1-2", "A1-3"]
    assert len(plots) == 18

    occupied = client.get("/api/plots?status=OCCUPIED").get_json()["plots"]
    assert [p["plot_identifier"] for p in occupied] == ["B1-6"]
    assert occupied[0]["block"] == "B1"

    bad = client.get("/api/plots?status=BROKEN")
    assert bad.status_code == 400
    assert bad.get_json()["kind"] == "ValidationError"

    packages = client.get("/api/packages").get_json()["packages"]
    assert packages[0]["price"] == "300.00"
    assert packages[0]["price_display"] == "RM 300.00"

    kits = client.get("/api/funeral-kits").get_json()["kits"]
    assert {k["kit_type"]: k["available_quantity"] for k in kits} == {"MALE": 3, "FEMALE": 5}


def test_deceased_search(app, client):
    response = client.get("/api/search-deceased?name=abdullah")
    assert response.status_code == 200
    data = response.get_json()
    assert data["count"] == 1
    assert data["results"][0]["block"] == "B1"
    assert data["results"][0]["plot"]["plot_identifier"] == "B1-6"

    assert client.get("/api/search-deceased?ic=400101015555").get_json()["count"] == 1
    assert client.get("/api/search-deceased?plot=b1-6").get_json()["count"] == 1
    assert client.get("/api/search-deceased?name=tiada").get_json()["count"] == 0

    missing = client.get("/api/search-deceased")
    assert missing.status_code == 400


def test_booking_requires_login(app, client):
    response = client.post("/api/bookings", json={})
    assert response.status_code == 401
    assert response.get_json()["kind"] == "AuthenticationError"


def test_full_booking_lifecycle_over_http(app, client, login_admin, login_user):
    login_user()
    package_id = Package.query.filter_by(label="Pakej Asas").first().id
    ahmad = staff_id("Ahmad bin Ali")

    available = client.get("/api/staff/available?role=GRAVE_DIGGER&date=2026-11-02").get_json()["staff"]
    assert available[0]["id"] == "not-needed-penggali"
    assert ahmad in [s["id"] for s in available]

    created = _create(
        client,
        digger=ahmad,
        kits=[{"kitType": "MALE", "quantity": 1}],
        packages=[package_id],
    )
    assert created.status_code == 201
    body = created.get_json()
    assert body["status"] == "PENDING"
    booking_id = body["bookingId"]

    busy = client.get("/api/staff/available?role=GRAVE_DIGGER&date=2026-11-02T15:00:00").get_json()["staff"]
    assert ahmad not in [s["id"] for s in busy]

    docs = client.post(
        f"/api/bookings/{booking_id}/documents",
        data={"death_certificate": (BytesIO(b"%PDF-1.4 sijil"), "sijil kematian.pdf")},
        content_type="multipart/form-data",
    )
    assert docs.status_code == 200
    assert docs.get_json()["booking"]["death_certificate_url"].endswith("death-certificate.pdf")

    early = client.post(f"/api/bookings/{booking_id}/payment", data={"transaction_id": "TXN-1"})
    assert early.status_code == 409
    assert early.get_json()["kind"] == "InvalidStateError"

    mine = client.get("/api/user/bookings").get_json()["bookings"]
    assert [b["id"] for b in mine] == [booking_id]
    assert mine[0]["total_price"] == "500.00"

    login_admin()
    approved = client.post(f"/api/admin/bookings/{booking_id}/approve", json={"notes": "OK"})
    assert approved.status_code == 200
    assert approved.get_json()["booking"]["status"] == "APPROVED_PENDING_PAYMENT"

    login_user()
    paid = client.post(
        f"/api/bookings/{booking_id}/payment",
        data={"receipt": (BytesIO(b"\x89PNG resit"), "resit.png"), "transaction_id": "TXN-77"},
        content_type="multipart/form-data",
    )
    assert paid.status_code == 200
    payment = paid.get_json()["payment"]
    assert payment["status"] == "SUBMITTED"
    assert payment["amount"] == "500.00"
    receipt = client.get(payment["receipt_url"])
    assert receipt.status_code == 200
    assert receipt.data == b"\x89PNG resit"
    assert receipt.mimetype == "image/png"
    owner_id = User.query.filter_by(email="waris@kubur.local").first().id
    assert client.get(f"/storage/payment_receipts/{owner_id}/missing.png").status_code == 404

    login_admin()
    verified = client.post(f"/api/admin/payments/{payment['id']}/verify", json={"verified": True})
    assert verified.get_json()["payment"]["status"] == "SUCCESSFUL"

    completed = client.post(f"/api/admin/bookings/{booking_id}/complete")
    assert completed.status_code == 200
    assert completed.get_json()["booking"]["status"] == "COMPLETED"
    repeat = client.post(f"/api/admin/bookings/{booking_id}/complete")
    assert repeat.status_code == 200

    plot = db.session.get(Plot, db.session.get(Booking, booking_id).plot_id, populate_existing=True)
    assert plot.status == PlotStatus.OCCUPIED


def test_conflicting_plot_reports_conflict(app, client, login_user):
    login_user()
    assert _create(client).status_code == 201
    second = _create(client, ic_number="770707077777")
    assert second.status_code == 409
    assert second.get_json()["kind"] == "ConflictError"


def test_out_of_stock_reports_insufficient_stock(app, client, login_user):
    login_user()
    response = _create(client, kits=[{"kitType": "MALE", "quantity": 4}])
    assert response.status_code == 409
    assert response.get_json()["kind"] == "InsufficientStockError"
    assert Booking.query.count() == 0


def test_admin_reject_over_http(app, client, login_admin, login_user):
    login_user()
    booking_id = _create(client, kits=[{"kitType": "MALE", "quantity": 1}]).get_json()["bookingId"]

    login_admin()
    missing_reason = client.post(f"/api/admin/bookings/{booking_id}/reject", json={})
    assert missing_reason.status_code == 400
    assert missing_reason.get_json()["kind"] == "ValidationError"

    rejected = client.post(
        f"/api/admin/bookings/{booking_id}/reject",
        json={"rejection_reason": "Incomplete documents"},
    )
    assert rejected.status_code == 200
    assert rejected.get_json()["booking"]["status"] == "REJECTED"

    kits = client.get("/api/admin/funeral-kits").get_json()["kits"]
    assert {k["kit_type"]: k["available_quantity"] for k in kits}["MALE"] == 3


def test_admin_booking_list_counts_and_pagination(app, client, login_admin, login_user):
    login_user()
    for identifier, ic_number in (("A1-1", "800101010001"), ("A1-2", "800101010002"), ("A1-3", "800101010003")):
        assert _create(client, plot=identifier, ic_number=ic_number).status_code == 201

    login_admin()
    first = Booking.query.order_by(Booking.id.asc()).first()
    client.post(f"/api/admin/bookings/{first.id}/reject", json={"reason": "Duplikasi"})

    page = client.get("/api/admin/bookings?limit=2&page=1").get_json()
    assert page["total"] == 3
    assert page["pages"] == 2
    assert len(page["rows"]) == 2
    assert page["counts"]["PENDING"] == 2
    assert page["counts"]["REJECTED"] == 1
    assert page["counts"]["ALL"] == 3

    second_page = client.get("/api/admin/bookings?limit=2&page=2").get_json()
    assert second_page["page"] == 2
    assert [row["id"] for row in second_page["rows"]] == [first.id]

    pending = client.get("/api/admin/bookings?status=PENDING").get_json()
    assert {row["status"] for row in pending["rows"]} == {"PENDING"}


def test_kit_adjust_and_usage_history(app, client, login_admin):
    login_admin()
    kit_id = FuneralKit.query.filter_by(kit_type=KitType.MALE).first().id

    refused = client.post(
        f"/api/admin/funeral-kits/{kit_id}/adjust",
        json={"quantity_change": -5, "reason": "ADMIN_REMOVE"},
    )
    assert refused.status_code == 400
    assert refused.get_json()["kind"] == "NegativeStockError"
    assert FuneralKitUsage.query.count() == 0

    added = client.post(
        f"/api/admin/funeral-kits/{kit_id}/adjust",
        json={"quantity_change": 4, "reason": "ADMIN_ADD", "notes": "Stok baru"},
    )
    assert added.status_code == 200
    assert added.get_json()["kit"]["available_quantity"] == 7

    bad_reason = client.post(
        f"/api/admin/funeral-kits/{kit_id}/adjust",
        json={"quantity_change": 1, "reason": "BOOKING"},
    )
    assert bad_reason.status_code == 400

    history = client.get(f"/api/admin/funeral-kits/usage?kit_id={kit_id}&limit=10").get_json()
    assert history["total"] == 1
    assert history["has_more"] is False
    assert history["rows"][0]["quantity_change"] == 4
    assert history["rows"][0]["reason"] == "ADMIN_ADD"
    assert history["rows"][0]["changed_by_name"] == "Pentadbir Kubur"


def test_staff_management(app, client, login_admin, login_user):
    login_admin()
    created = client.post("/api/admin/staff", json={"name": "Zainal bin Ahmad", "phone": "0139998888", "role": "GRAVE_DIGGER"})
    assert created.status_code == 201
    new_id = created.get_json()["staff"]["id"]

    updated = client.put(
        f"/api/admin/staff/{new_id}",
        json={"name": "Zainal bin Ahmad", "phone": "0139998888", "role": "GRAVE_DIGGER", "is_active": False},
    )
    assert updated.get_json()["staff"]["is_active"] is False

    listing = client.get("/api/admin/staff?role=GRAVE_DIGGER&active_only=1").get_json()["staff"]
    assert new_id not in [s["id"] for s in listing]

    assert client.delete(f"/api/admin/staff/{new_id}").status_code == 200

    ahmad = staff_id("Ahmad bin Ali")
    login_user()
    assert _create(client, digger=ahmad).status_code == 201
    login_admin()
    referenced = client.delete(f"/api/admin/staff/{ahmad}")
    assert referenced.status_code == 409
    assert referenced.get_json()["kind"] == "ConflictError"

    invalid = client.post("/api/admin/staff", json={"name": "", "role": "GRAVE_DIGGER"})
    assert invalid.status_code == 400


def test_package_management(app, client, login_admin, login_user):
    login_admin()
    created = client.post("/api/admin/packages", json={"label": "Kepuk Konkrit", "price": "450.5", "description": "Kepuk"})
    assert created.status_code == 201
    package = created.get_json()["package"]
    assert package["price"] == "450.50"

    negative = client.put(f"/api/admin/packages/{package['id']}", json={"label": "Kepuk Konkrit", "price": "-1"})
    assert negative.status_code == 400

    duplicate = client.post("/api/admin/packages", json={"label": "pakej asas", "price": "10"})
    assert duplicate.status_code == 409

    used_id = Package.query.filter_by(label="Batu Nisan").first().id
    login_user()
    assert _create(client, packages=[used_id]).status_code == 201
    login_admin()
    in_use = client.delete(f"/api/admin/packages/{used_id}")
    assert in_use.status_code == 409
    assert client.delete(f"/api/admin/packages/{package['id']}").status_code == 200


def test_waqaf_flow_and_statistics(app, client, login_admin):
    response = client.post("/api/waqaf", json={"donor_name": "Keluarga Rahim", "amount": "250", "message": "Sedekah"})
    assert response.status_code == 201
    waqaf = response.get_json()["waqaf"]
    assert waqaf["payment_status"] == "PENDING"
    assert waqaf["currency"] == "MYR"

    assert client.post("/api/waqaf", json={"donor_name": "X", "amount": "0"}).status_code == 400

    login_admin()
    updated = client.patch(f"/api/admin/waqaf/{waqaf['id']}", json={"payment_status": "SUCCESSFUL"})
    assert updated.get_json()["waqaf"]["payment_status"] == "SUCCESSFUL"
    assert client.patch(f"/api/admin/waqaf/{waqaf['id']}", json={"payment_status": "PENDING"}).status_code == 400

    listing = client.get("/api/admin/waqaf").get_json()
    assert listing["total"] == Waqaf.query.count()

    stats = client.get("/api/admin/statistics").get_json()
    assert stats["waqaf"]["total_waqaf"] == 2
    assert stats["waqaf"]["total_waqaf_amount"] == "400.00"
    assert stats["waqaf"]["successful_waqaf"] == 2

    export = client.get("/api/admin/statistics/export?type=waqaf")
    assert export.status_code == 200
    assert export.headers["Content-Type"].startswith("text/csv")
    lines = export.data.decode("utf-8").strip().splitlines()
    assert lines[0].startswith("id,created_at,donor_name")
    assert len(lines) == 3

    assert client.get("/api/admin/statistics/export?type=unknown").status_code == 400


def test_statistics_by_month(app, client, login_admin, login_user):
    login_user()
    assert _create(client, plot="A1-1", ic_number="800101010001").status_code == 201
    assert _create(client, plot="A1-2", ic_number="800101010002", when="2026-12-05T09:00:00").status_code == 201

    mine = client.get("/api/statistics/user?year=2026").get_json()
    assert mine["bookings"]["total_bookings"] == 2
    assert set(mine["bookings"]["monthly"]) == {"2026-11", "2026-12"}

    login_admin()
    november = client.get("/api/admin/statistics?year=2026&month=11").get_json()
    assert november["bookings"]["total_bookings"] == 1
    assert november["bookings"]["by_status"]["PENDING"] == 1


def test_payment_qr_setting(app, client, login_admin):
    assert client.get("/api/payment-settings/qr").get_json()["qr_image_url"] is None

    login_admin()
    missing = client.post("/api/admin/payment-settings/qr", data={}, content_type="multipart/form-data")
    assert missing.status_code == 400

    uploaded = client.post(
        "/api/admin/payment-settings/qr",
        data={"qr_image": (BytesIO(b"\x89PNG qr"), "duitnow.png")},
        content_type="multipart/form-data",
    )
    assert uploaded.status_code == 200
    url = uploaded.get_json()["qr_image_url"]
    assert url.startswith("/storage/payment_qr/")
    assert client.get("/api/payment-settings/qr").get_json()["qr_image_url"] == url

    client.post("/auth/logout")
    image = client.get(url)
    assert image.status_code == 200
    assert image.data == b"\x89PNG qr"


def test_payment_lookup_for_booking(app, client, login_admin, login_user):
    login_user()
    booking_id = _create(client).get_json()["bookingId"]
    assert client.get(f"/api/bookings/{booking_id}/payment").status_code == 404

    login_admin()
    client.post(f"/api/admin/bookings/{booking_id}/approve")
    payment = Payment.query.filter_by(booking_id=booking_id).one()

    login_user()
    response = client.get(f"/api/bookings/{booking_id}/payment").get_json()["payment"]
    assert response["id"] == payment.id
    assert response["status"] == "PENDING"
    assert response["method"] == "QR_PAYMENT"


def test_seed_demo_command_skips_when_users_exist(app):
    result = app.test_cli_runner().invoke(args=["seed-demo"])
    assert result.exit_code == 0
    assert "Seed skipped" in result.output
    assert Plot.query.count() == 18


def test_statistics_reject_out_of_range_year(app, client, login_admin, login_user):
    login_user()
    assert client.get("/api/statistics/user?year=0").status_code == 400

    login_admin()
    for path in (
        "/api/admin/statistics?year=0",
        "/api/admin/statistics?year=10000&month=1",
        "/api/admin/statistics/export?type=waqaf&year=0",
    ):
        response = client.get(path)
        assert response.status_code == 400, path
        assert response.get_json()["kind"] == "ValidationError"


def test_waqaf_months_follow_local_calendar(app, client, login_admin):
    # 00:30 on 1 May in Kuala Lumpur
    db.session.add(
        Waqaf(
            donor_name="Jemaah Subuh",
            amount=Decimal("80.00"),
            payment_status=WaqafStatus.SUCCESSFUL,
            created_at=datetime(2030, 4, 30, 16, 30, tzinfo=timezone.utc),
        )
    )
    db.session.commit()

    login_admin()
    may = client.get("/api/admin/statistics?year=2030&month=5").get_json()["waqaf"]
    assert may["total_waqaf"] == 1
    assert may["monthly"] == {"2030-05": {"count": 1, "amount": "80.00"}}

    april = client.get("/api/admin/statistics?year=2030&month=4").get_json()["waqaf"]
    assert april["total_waqaf"] == 0


def test_waqaf_listing_pages(app, client, login_admin):
    for name in ("Penderma A", "Penderma B", "Penderma C"):
        assert client.post("/api/waqaf", json={"donor_name": name, "amount": "10"}).status_code == 201

    login_admin()
    first = client.get("/api/admin/waqaf?limit=2&page=1").get_json()
    assert first["total"] == 4
    assert first["pages"] == 2
    assert [row["donor_name"] for row in first["rows"]] == ["Penderma C", "Penderma B"]

    last = client.get("/api/admin/waqaf?limit=2&page=2").get_json()
    assert [row["donor_name"] for row in last["rows"]] == ["Penderma A", "Hamba Allah"]

    pending = client.get("/api/admin/waqaf?status=PENDING").get_json()
    assert pending["total"] == 3
