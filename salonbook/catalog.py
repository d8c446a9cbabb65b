"""Read-only catalog queries: branches, stylists, products, services,
transactions and the client dashboard."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time

from sqlalchemy import select
from sqlalchemy.orm import Session

from .extensions import db
from .feed import appointment_instant, map_client_appointments
from .models import Branch, Product, Service, Transaction, User
from .pricing import PricingCache
from .read_models import parse_calendar_date, to_number


def _session(session: Session | None) -> Session:
    return session or db.session


def get_branch(branch_id: str, session: Session | None = None) -> Branch | None:
    return _session(session).get(Branch, branch_id)


def list_branches(session: Session | None = None) -> list[Branch]:
    stmt = select(Branch).where(Branch.is_active.is_(True)).order_by(Branch.name)
    return list(_session(session).scalars(stmt))


def stylist_to_dict(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "firstName": user.first_name or "",
        "lastName": user.last_name or "",
        "name": user.display_name,
        "email": user.email,
        "phone": user.phone or "",
        "imageURL": user.image_url or "",
        "branchId": user.branch_id,
        "isActive": bool(user.is_active),
    }


def _stylist_query():
    return select(User).where(User.user_type == "stylist")


def get_stylist(stylist_id: str, session: Session | None = None) -> User | None:
    user = _session(session).get(User, stylist_id)
    if user is None or user.user_type != "stylist":
        return None
    return user


def get_stylists_by_ids(stylist_ids: Iterable[str], session: Session | None = None) -> list[User]:
    ids = [stylist_id for stylist_id in dict.fromkeys(stylist_ids) if stylist_id]
    if not ids:
        return []
    return list(_session(session).scalars(_stylist_query().where(User.id.in_(ids))))


def list_stylists(branch_id: str | None = None, session: Session | None = None) -> list[User]:
    stmt = _stylist_query().where(User.is_active.is_(True))
    if branch_id:
        stmt = stmt.where(User.branch_id == branch_id)
    return list(_session(session).scalars(stmt.order_by(User.last_name, User.first_name)))


def _active_products(session: Session | None) -> list[Product]:
    stmt = select(Product).where(Product.status == "Active").order_by(Product.name)
    return list(_session(session).scalars(stmt))


def list_products(branch_id: str | None = None, session: Session | None = None) -> list[Product]:
    """Active products, optionally only those stocked at ``branch_id``."""
    products = _active_products(session)
    if branch_id:
        products = [product for product in products if branch_id in (product.branches or [])]
    return products


def search_products(branch_id: str, term: str, session: Session | None = None) -> list[Product]:
    needle = (term or "").strip().lower()
    products = list_products(branch_id, session)
    if not needle:
        return products
    return [
        product
        for product in products
        if needle in (product.name or "").lower()
        or needle in (product.brand or "").lower()
        or needle in (product.category or "").lower()
    ]


def list_services(branch_id: str | None = None, session: Session | None = None) -> list[dict[str, object]]:
    """Active services with the price charged at ``branch_id``."""
    session = _session(session)
    cache = PricingCache(branch_id, session=session)
    services = session.scalars(select(Service).where(Service.is_active.is_(True)).order_by(Service.name))
    return [
        {
            "id": service.id,
            "name": service.name,
            "description": service.description or "",
            "duration": service.duration or 0,
            "price": cache.price_of(service.id),
            "branches": list(service.branches or []),
        }
        for service in services
    ]


def effective_line_price(line: dict[str, object]) -> float:
    """Charged price of a transaction line: the adjusted price when present."""
    for key in ("adjustedPrice", "price"):
        value = line.get(key)
        if value is not None and value != "":
            return to_number(value)
    return 0


def transaction_detail(transaction: Transaction) -> dict[str, object]:
    payload = transaction.to_dict()
    payload["services"] = [
        {**line, "effectivePrice": effective_line_price(line)} for line in payload["services"]
    ]
    payload["products"] = [
        {**line, "effectivePrice": effective_line_price(line)} for line in payload["products"]
    ]
    return payload


def _transaction_matches(transaction: Transaction, needle: str, branch_names: dict[str, str]) -> bool:
    info = transaction.client_info or {}
    haystacks = [
        str(info.get("name") or ""),
        str(info.get("email") or ""),
        branch_names.get(transaction.branch_id or "", ""),
        transaction.notes or "",
        *(str(line.get("serviceName") or "") for line in transaction.services or []),
    ]
    return any(needle in text.lower() for text in haystacks)


def list_transactions(
    client_id: str,
    search: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    session: Session | None = None,
) -> list[Transaction]:
    """A client's transactions, newest first, filtered in memory."""
    session = _session(session)
    stmt = (
        select(Transaction)
        .where(Transaction.client_id == client_id)
        .order_by(Transaction.created_at.desc())
    )
    transactions = list(session.scalars(stmt))

    if start_date is not None:
        start = datetime.combine(start_date, time.min)
        transactions = [tx for tx in transactions if tx.created_at.replace(tzinfo=None) >= start]
    if end_date is not None:
        end = datetime.combine(end_date, time.max)
        transactions = [tx for tx in transactions if tx.created_at.replace(tzinfo=None) <= end]

    needle = (search or "").strip().lower()
    if needle:
        branch_ids = {tx.branch_id for tx in transactions if tx.branch_id}
        branch_names = {
            branch.id: branch.name or ""
            for branch in session.scalars(select(Branch).where(Branch.id.in_(branch_ids)))
        }
        transactions = [tx for tx in transactions if _transaction_matches(tx, needle, branch_names)]

    return transactions


def dashboard_summary(client_id: str, today: date | None = None, session: Session | None = None):
    """Headline numbers, the next three visits and the last three completed ones."""
    session = _session(session)
    today = today or date.today()
    appointments = map_client_appointments(session, client_id)

    completed = [item for item in appointments if item.get("status") == "completed"]
    stylists = {
        pair.get("stylistId")
        for item in appointments
        for pair in item.get("serviceStylistPairs") or []
        if pair.get("stylistId")
    }

    start_of_today = datetime.combine(today, time.min)
    upcoming = sorted(
        (
            item
            for item in appointments
            if item.get("status") in {"pending", "confirmed", "scheduled"}
            and appointment_instant(item) >= start_of_today
        ),
        key=appointment_instant,
    )[:3]
    recent = sorted(completed, key=appointment_instant, reverse=True)[:3]

    return {
        "stats": {
            "todayAppointments": sum(1 for item in appointments if parse_calendar_date(item.get("date")) == today),
            "totalVisits": sum(1 for item in appointments if item.get("status") in {"completed", "confirmed"}),
            "totalSpent": sum(to_number(item.get("totalPrice")) for item in completed),
            "favoriteStylists": len(stylists),
        },
        "upcomingAppointments": upcoming,
        "recentVisits": [
            {
                "id": item["id"],
                "service": (item["serviceNames"] or ["Service"])[0],
                "stylist": item["stylistName"],
                "date": item["date"] or "",
                "price": item["totalPrice"],
            }
            for item in recent
        ],
    }
