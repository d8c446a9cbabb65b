#!/usr/bin/env python3
"""Seed branches, services with per-branch prices, stylists and products."""
import sys
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from werkzeug.security import generate_password_hash

from salonbook import create_app
from salonbook.extensions import db
from salonbook.models import Branch, Product, Service, User

BRANCHES = [
    {"name": "Makati Branch", "address": "Ayala Ave, Makati", "phone": "0281234567", "hours": "8:00 AM - 8:00 PM"},
    {"name": "Quezon City Branch", "address": "Tomas Morato, QC", "phone": "0287654321", "hours": "9:00 AM - 7:00 PM"},
]

# Positional prices: index i of "prices" applies to branch i of BRANCHES.
SERVICES = [
    {"name": "Haircut", "price": 350, "duration": 45, "prices": [400, 350]},
    {"name": "Hair Color", "price": 1800, "duration": 120, "prices": [2000, 1800]},
    {"name": "Hair Spa", "price": 900, "duration": 60, "prices": None},
    {"name": "Manicure", "price": 250, "duration": 30, "prices": [300]},
]

STYLISTS = [
    {"first_name": "Ana", "last_name": "Reyes", "email": "ana.reyes@salonbook.test"},
    {"first_name": "Ben", "last_name": "Santos", "email": "ben.santos@salonbook.test"},
]

PRODUCTS = [
    {"name": "Keratin Shampoo", "brand": "Luxe", "category": "Hair Care", "otc_price": 550},
    {"name": "Argan Oil Serum", "brand": "Luxe", "category": "Hair Care", "otc_price": 780},
    {"name": "Matte Clay", "brand": "Groom Co", "category": "Styling", "otc_price": 420},
]

def seed_catalog():
    app = create_app()

    with app.app_context():
        if Branch.query.count() > 0:
            print("⏭️  Catalog already seeded. Skipping...")
            return

        branches = [Branch(**data) for data in BRANCHES]
        db.session.add_all(branches)
        db.session.flush()
        branch_ids = [branch.id for branch in branches]
        print(f"📍 Added {len(branches)} branches")

        for data in SERVICES:
            prices = data["prices"]
            service = Service(
                name=data["name"],
                price=data["price"],
                duration=data["duration"],
                branches=branch_ids[:len(prices)] if prices else None,
                prices=prices,
            )
            db.session.add(service)
            print(f"  ✓ Service: {data['name']} (default ₱{data['price']}, per-branch {prices or '-'})")

        for index, data in enumerate(STYLISTS):
            db.session.add(User(
                user_type="stylist",
                roles=["stylist"],
                branch_id=branch_ids[index % len(branch_ids)],
                password_hash=generate_password_hash("changeme"),
                **data,
            ))
            print(f"  ✓ Stylist: {data['first_name']} {data['last_name']}")

        for data in PRODUCTS:
            db.session.add(Product(branches=branch_ids, **data))
            print(f"  ✓ Product: {data['name']}")

        db.session.commit()
        print("\n✅ Catalog seeded successfully!")

if __name__ == "__main__":
    seed_catalog()
