"""Tests for catalog reads, transactions and the client dashboard."""
from __future__ import annotations

from datetime import date, datetime

from salonbook.catalog import (dashboard_summary, effective_line_price, list_products, list_services,
                               list_stylists, list_transactions, search_products, transaction_detail)
from salonbook.extensions import db
from salonbook.models import Branch, Product, Service, Transaction, User


def _seed_products():
    db.session.add_all([
        Product(id="p1", name="Argan Oil", brand="Loreal", category="Hair Care", branches=["b1"]),
        Product(id="p2", name="Shampoo", brand="Kerastase", category="Hair Care", branches=["b1", "b2"]),
        Product(id="p3", name="Nail Polish", brand="OPI", category="Nails", branches=["b2"]),
        Product(id="p4", name="Old Gel", brand="OPI", category="Nails", branches=["b1"], status="Inactive"),
    ])
    db.session.commit()


def _seed_transactions():
    db.session.add_all([
        Transaction(
            id="t1",
            client_id="c1",
            branch_id="b1",
            total=450,
            services=[{"serviceName": "Haircut", "price": 500, "adjustedPrice": 450}],
            products=[{"productName": "Shampoo", "price": 300}],
            client_info={"name": "Carla Cruz", "email": "carla@example.com"},
            created_at=datetime(2025, 3, 10, 9, 0),
        ),
        Transaction(
            id="t2",
            client_id="c1",
            branch_id="b1",
            total=900,
            services=[{"serviceName": "Hair Spa", "price": 900}],
            created_at=datetime(2025, 5, 2, 15, 0),
        ),
        Transaction(id="t3", client_id="c2", total=100, created_at=datetime(2025, 5, 3, 15, 0)),
    ])
    db.session.commit()


def test_list_products_filters_branch_and_status(app) -> None:
    _seed_products()

    assert [product.id for product in list_products("b1")] == ["p1", "p2"]
    assert [product.id for product in list_products()] == ["p1", "p3", "p2"]


def test_search_products_matches_name_brand_or_category(app) -> None:
    _seed_products()

    assert [product.id for product in search_products("b2", "opi")] == ["p3"]
    assert [product.id for product in search_products("b1", "hair care")] == ["p1", "p2"]
    assert [product.id for product in search_products("b1", "  ")] == ["p1", "p2"]


def test_list_stylists_by_branch(app, stylist) -> None:
    db.session.add(User(id="sty2", first_name="Ben", last_name="Lim", email="ben@example.com",
                        user_type="stylist", branch_id="b2"))
    db.session.add(User(id="sty3", first_name="Cy", last_name="Ong", email="cy@example.com",
                        user_type="stylist", branch_id="b1", is_active=False))
    db.session.commit()

    assert [user.id for user in list_stylists("b1")] == ["sty1"]
    assert {user.id for user in list_stylists()} == {"sty1", "sty2"}


def test_list_services_prices_for_branch(app) -> None:
    db.session.add_all([
        Service(id="cut", name="Haircut", price=350, duration=45, branches=["b1", "b2"], prices=[400, 380]),
        Service(id="old", name="Perm", price=1500, is_active=False),
    ])
    db.session.commit()

    services = list_services("b2")

    assert [service["id"] for service in services] == ["cut"]
    assert services[0]["price"] == 380
    assert services[0]["duration"] == 45


def test_effective_line_price() -> None:
    assert effective_line_price({"price": 500, "adjustedPrice": 450}) == 450
    assert effective_line_price({"price": 500, "adjustedPrice": None}) == 500
    assert effective_line_price({"price": "120"}) == 120
    assert effective_line_price({}) == 0


def test_list_transactions_newest_first_and_filtered(app, branch) -> None:
    _seed_transactions()

    assert [tx.id for tx in list_transactions("c1")] == ["t2", "t1"]
    assert [tx.id for tx in list_transactions("c1", start_date=date(2025, 4, 1))] == ["t2"]
    assert [tx.id for tx in list_transactions("c1", end_date=date(2025, 3, 10))] == ["t1"]
    assert [tx.id for tx in list_transactions("c1", search="spa")] == ["t2"]
    assert [tx.id for tx in list_transactions("c1", search="makati")] == ["t2", "t1"]


def test_transaction_detail_uses_adjusted_price(app) -> None:
    _seed_transactions()

    detail = transaction_detail(db.session.get(Transaction, "t1"))

    assert detail["services"][0]["effectivePrice"] == 450
    assert detail["products"][0]["effectivePrice"] == 300


def test_dashboard_summary(app, branch, stylist, make_appointment) -> None:
    today = date(2025, 6, 1)
    pair = [{"serviceId": "svc1", "serviceName": "Haircut", "stylistId": "sty1", "stylistName": "Ana Reyes"}]
    make_appointment(appointment_date="2025-06-01", appointment_time="15:00", status="confirmed",
                     service_stylist_pairs=pair, total_price=300)
    make_appointment(appointment_date="2025-06-03", appointment_time="10:00", status="pending",
                     service_stylist_pairs=pair, total_price=200)
    make_appointment(appointment_date="2025-05-01", appointment_time="10:00", status="completed",
                     service_stylist_pairs=pair, total_price=500)
    make_appointment(appointment_date="2025-04-01", appointment_time="10:00", status="completed",
                     service_stylist_pairs=pair, total_price=250)

    summary = dashboard_summary("c1", today=today)

    assert summary["stats"] == {
        "todayAppointments": 1,
        "totalVisits": 3,
        "totalSpent": 750,
        "favoriteStylists": 1,
    }
    assert [item["date"] for item in summary["upcomingAppointments"]] == ["2025-06-01", "2025-06-03"]
    assert [visit["date"] for visit in summary["recentVisits"]] == ["2025-05-01", "2025-04-01"]
    assert summary["recentVisits"][0] == {
        "id": summary["recentVisits"][0]["id"],
        "service": "Haircut",
        "stylist": "Ana Reyes",
        "date": "2025-05-01",
        "price": 500,
    }


def test_catalog_routes(client, branch, stylist) -> None:
    db.session.add(Branch(id="b0", name="Inactive Branch", is_active=False))
    db.session.commit()

    branches = client.get("/branches")
    assert [item["id"] for item in branches.json["branches"]] == ["b1"]
    assert client.get("/branches/b1").json["branch"]["name"] == "Makati Branch"
    assert client.get("/branches/missing").status_code == 404

    stylists = client.get("/stylists?branch_id=b1")
    assert stylists.json["stylists"][0]["name"] == "Ana Reyes"
    assert client.get("/stylists/sty1").status_code == 200
    assert client.get("/stylists/missing").status_code == 404


def test_products_route_requires_branch_for_search(client) -> None:
    _seed_products()

    assert client.get("/products?q=opi").status_code == 400
    response = client.get("/products?branch_id=b2&q=opi")
    assert [item["id"] for item in response.json["products"]] == ["p3"]


def test_transaction_routes(client, auth_headers, branch) -> None:
    _seed_transactions()

    listed = client.get("/clients/c1/transactions?start_date=2025-04-01", headers=auth_headers("c1"))
    assert [item["id"] for item in listed.json["transactions"]] == ["t2"]
    assert client.get("/clients/c1/transactions?start_date=soon", headers=auth_headers("c1")).status_code == 400

    detail = client.get("/transactions/t1", headers=auth_headers("c1"))
    assert detail.json["transaction"]["services"][0]["effectivePrice"] == 450
    assert client.get("/transactions/t3", headers=auth_headers("c1")).status_code == 403


def test_dashboard_route(client, auth_headers) -> None:
    response = client.get("/clients/c1/dashboard", headers=auth_headers("c1"))

    assert response.status_code == 200
    assert response.json["stats"]["totalVisits"] == 0
    assert response.json["upcomingAppointments"] == []
