"""Branch-specific service pricing.

A service may carry parallel ``branches``/``prices`` lists: the price at
position *i* applies to the branch id at position *i*. Branches missing from
the list pay the service's default ``price``.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .extensions import db
from .models import Service

logger = logging.getLogger(__name__)


def price_for_branch(service: Mapping[str, object], branch_id: object) -> float:
    """Pick the price a service document charges at ``branch_id``."""
    prices = service.get("prices")
    branches = service.get("branches")

    if isinstance(prices, list) and isinstance(branches, list) and branches:
        if isinstance(branch_id, str) and branch_id.strip():
            try:
                index = branches.index(branch_id)
            except ValueError:
                index = -1
            if 0 <= index < len(prices) and prices[index] is not None:
                return prices[index]

    return service.get("price") or 0


def default_price(service: Mapping[str, object]) -> float:
    """Branch-agnostic display price: first positional price, else the default."""
    prices = service.get("prices")
    if isinstance(prices, list) and prices:
        return prices[0] if prices[0] is not None else 0
    return service.get("price") or 0


def resolve_price(service_id: str, branch_id: str | None, session: Session | None = None) -> float:
    """Resolve the price to charge for ``service_id`` at ``branch_id``.

    Never raises: a missing service or a failed lookup charges 0. Those
    cases are logged so they can be told apart from a genuinely free service.
    """
    session = session or db.session
    if not service_id:
        logger.warning("Price requested without a service id; charging 0")
        return 0

    try:
        service = session.get(Service, service_id)
    except SQLAlchemyError as exc:
        logger.warning(
            "Price lookup failed for service %s at branch %s; charging 0",
            service_id,
            branch_id,
            exc_info=exc,
        )
        return 0

    if service is None:
        logger.warning("Service %s not found; charging 0", service_id)
        return 0

    return price_for_branch(service.to_document(), branch_id)


def resolve_all_prices(branch_id: str | None = None, session: Session | None = None) -> dict[str, float]:
    """Map every catalog service id to its price.

    With a branch every service is resolved through :func:`resolve_price`.
    Without one (clients that may book at any branch) the first positional
    price is used as a display fallback.
    """
    session = session or db.session
    try:
        services = session.scalars(select(Service)).all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to load the service catalog for pricing", exc_info=exc)
        return {}

    pricing: dict[str, float] = {}
    for service in services:
        if branch_id:
            pricing[service.id] = resolve_price(service.id, branch_id, session=session)
        else:
            pricing[service.id] = default_price(service.to_document())

    logger.debug("Resolved %d service prices for branch %s", len(pricing), branch_id)
    return pricing


class PricingCache:
    """Resolved prices for one branch, built once per request or feed push.

    There is no shared cache and no invalidation: build a new instance
    whenever fresh prices are needed.
    """

    def __init__(self, branch_id: str | None = None, session: Session | None = None) -> None:
        self.branch_id = branch_id or None
        self.prices = resolve_all_prices(self.branch_id, session=session)

    def price_of(self, service_id: object) -> float:
        return self.prices.get(service_id) or 0

    def has_price(self, service_id: object) -> bool:
        return bool(self.prices.get(service_id))

    def sum_for_selections(self, pairs: Iterable[Mapping[str, object]]) -> float:
        """Sum the price of every selected service; stylists do not affect price."""
        return sum(self.price_of(pair.get("serviceId")) for pair in pairs)
