"""Seed a database with demo clients, users and warehouse facts."""

from __future__ import annotations

import argparse
import asyncio
import random
from datetime import datetime, timedelta

from sqlalchemy import select

from threepl_dashboard.config import get_settings
from threepl_dashboard.core.logging import setup_logging
from threepl_dashboard.db import Database
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.models import (
    Client,
    DimSku,
    DimTeam,
    FactInbound,
    FactInventory,
    FactOutbound,
    Provider,
    User,
)
from threepl_dashboard.services.auth import hash_password

CLIENTS = [("ACME", "Acme Retail"), ("GLOBEX", "Globex Foods"), ("INITECH", "Initech Electronics")]
PROVIDERS = [("FASTFREIGHT", "Fast Freight"), ("BLUELINE", "Blueline Logistics")]
TEAMS = [("T1", "Morning crew", "morning"), ("T2", "Afternoon crew", "afternoon"), ("T3", "Night crew", "night")]
SKU_CATEGORIES = ["electronics", "apparel", "books", "toys", "home"]


def _build_dimensions(rng: random.Random) -> list:
    objects: list = [Client(id=code, name=name, active=True) for code, name in CLIENTS]
    objects += [Provider(id=code, name=name, active=True) for code, name in PROVIDERS]
    objects += [DimTeam(id=code, name=name, shift_type=shift) for code, name, shift in TEAMS]
    for client_id, _ in CLIENTS:
        for index in range(1, 6):
            category = rng.choice(SKU_CATEGORIES)
            objects.append(
                DimSku(
                    sku=f"{client_id}-SKU{index:03d}",
                    description=f"{category.title()} item {index}",
                    category=category,
                    client_id=client_id,
                )
            )
    return objects


def _day_facts(rng: random.Random, day: datetime, order_seq: int) -> tuple[list, int]:
    objects: list = []
    for client_id, _ in CLIENTS:
        skus = [f"{client_id}-SKU{index:03d}" for index in range(1, 6)]
        for _ in range(rng.randint(2, 4)):
            arrival = day + timedelta(hours=rng.randint(6, 12), minutes=rng.randint(0, 59))
            received = rng.randint(50, 400)
            objects.append(
                FactInbound(
                    provider_id=rng.choice(PROVIDERS)[0],
                    client_id=client_id,
                    sku=rng.choice(skus),
                    received_units=received,
                    damaged_units=rng.choice([0, 0, 0, 1, 2, rng.randint(0, received // 20)]),
                    arrival_at=arrival,
                    putaway_at=arrival + timedelta(minutes=rng.randint(60, 420)),
                    created_at=arrival,
                )
            )

        for _ in range(rng.randint(4, 8)):
            order_seq += 1
            order_id = f"ORD-{order_seq:06d}"
            created = day + timedelta(hours=rng.randint(7, 15), minutes=rng.randint(0, 59))
            promised = created + timedelta(days=rng.choice([1, 2, 2, 3]))
            cutoff = created.replace(hour=17, minute=0) if created.hour < 17 else created + timedelta(hours=2)
            ready = created + timedelta(minutes=rng.randint(30, 600))
            team_id = rng.choice(TEAMS)[0]
            for sku in rng.sample(skus, rng.randint(1, 3)):
                ordered = rng.randint(1, 30)
                picked = ordered if rng.random() < 0.95 else max(0, ordered - rng.randint(1, 3))
                shipped = promised + timedelta(hours=rng.choice([-30, -20, -6, -2, 4, 26]))
                objects.append(
                    FactOutbound(
                        client_id=client_id,
                        team_id=team_id,
                        sku=sku,
                        order_id=order_id,
                        promised_date=promised,
                        shipped_date=shipped if rng.random() < 0.9 else None,
                        picked_units=picked,
                        ordered_units=ordered,
                        ready_at=ready,
                        cutoff_time=cutoff,
                        created_at=created,
                    )
                )

        for sku in skus:
            physical = rng.randint(100, 1000)
            objects.append(
                FactInventory(
                    sku=sku,
                    client_id=client_id,
                    system_qty=physical + rng.choice([0, 0, 0, rng.randint(-20, 20)]),
                    physical_qty=physical,
                    stock_qty=physical,
                    avg_daily_demand=round(rng.uniform(10, 90), 2),
                    created_at=day + timedelta(hours=23),
                )
            )
    return objects, order_seq


async def _run(database_url: str, days: int, seed: int, admin_password: str) -> None:
    rng = random.Random(seed)
    database = Database(database_url)
    try:
        await database.create_all()
        async with database.session() as session:
            existing = await session.execute(select(Client.id).limit(1))
            if existing.scalar_one_or_none() is not None:
                raise SystemExit("Database already contains master data; refusing to seed twice")

            session.add_all(_build_dimensions(rng))
            session.add_all(
                [
                    User(
                        username="admin",
                        email="admin@example.com",
                        password=hash_password(admin_password),
                        role="admin",
                    ),
                    User(
                        username="acme",
                        email="acme@example.com",
                        password=hash_password(admin_password),
                        role="client",
                        client_id="ACME",
                    ),
                ]
            )

            today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
            order_seq = 0
            fact_count = 0
            for offset in range(days, 0, -1):
                facts, order_seq = _day_facts(rng, today - timedelta(days=offset), order_seq)
                session.add_all(facts)
                fact_count += len(facts)
            await session.commit()
        print(f"Seeded {len(CLIENTS)} clients and {fact_count} fact rows over {days} days")
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the 3PL dashboard database with demo data")
    parser.add_argument("--database-url", default=None, help="Defaults to DATABASE_URL from settings")
    parser.add_argument("--days", type=int, default=90)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--password", default="admin123", help="Password for the demo users")
    args = parser.parse_args()
    settings = get_settings()
    setup_logging(settings.log_level)
    asyncio.run(_run(args.database_url or settings.database_url, args.days, args.seed, args.password))


if __name__ == "__main__":
    main()
