"""
Seed data generator -- fills the sales fact table with realistic order lines.

Generates ~20 000 rows spread over three calendar years, with a mixed
``state`` location column that exercises every geo-derivation case:
  - bare US state codes            (CA, NY, TX, ...)
  - bare country codes             (UK, JP, SG, ...)
  - ``CC-City`` prefixed markets   (CN-Shanghai, JP-Osaka, ...)
  - free-text markets              (Online Store)

Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import random
from datetime import date, timedelta

from faker import Faker
from sqlalchemy import create_engine, text

from src.core.config import get_settings

fake = Faker()
Faker.seed(42)
random.seed(42)

# ── Tunables ─────────────────────────────────────────────
NUM_ROWS = 20_000
NUM_REPS = 40
DATE_START = date(2023, 1, 1)
DATE_END = date(2025, 12, 31)
DATE_RANGE_DAYS = (DATE_END - DATE_START).days

LOCATIONS: dict[str, list[str]] = {
    "Americas": ["CA", "NY", "TX", "WA", "FL", "IL", "MX", "BR-Sao Paulo", "Online Store"],
    "Europe": ["UK", "FR-Paris", "NL-Amsterdam", "IT-Milan", "ES-Madrid", "SE"],
    "Greater China": ["CN-Shanghai", "CN-Beijing", "HK", "TW-Taipei"],
    "Japan": ["JP", "JP-Tokyo", "JP-Osaka"],
    "Rest of Asia Pacific": ["AU-Sydney", "SG", "KR-Seoul", "NZ"],
}
REGION_WEIGHTS = [0.40, 0.25, 0.17, 0.08, 0.10]

CHANNELS = ["Online", "Retail", "Partner"]
CHANNEL_WEIGHTS = [0.5, 0.3, 0.2]

CATEGORIES: dict[str, tuple[float, float, float]] = {
    # category: (min price, max price, cost ratio)
    "Phones": (399.0, 1299.0, 0.58),
    "Laptops": (799.0, 2499.0, 0.64),
    "Tablets": (299.0, 1099.0, 0.61),
    "Wearables": (149.0, 799.0, 0.55),
    "Accessories": (19.0, 249.0, 0.42),
}

DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    order_date        DATE        NOT NULL,
    year              INTEGER     NOT NULL,
    quarter           INTEGER     NOT NULL,
    month             INTEGER     NOT NULL,
    region            TEXT        NOT NULL,
    state             TEXT,
    channel           TEXT,
    product_category  TEXT,
    product_name      TEXT,
    sales_rep         TEXT,
    revenue           NUMERIC(14, 2),
    units             INTEGER,
    cogs              NUMERIC(14, 2)
)
"""


# ── Generators ───────────────────────────────────────────

def _rand_date() -> date:
    return DATE_START + timedelta(days=random.randint(0, DATE_RANGE_DAYS))


def gen_products() -> dict[str, list[str]]:
    return {
        cat: [f"{fake.unique.word().title()} {cat[:-1] if cat.endswith('s') else cat}" for _ in range(6)]
        for cat in CATEGORIES
    }


def gen_rows(products: dict[str, list[str]]) -> list[dict]:
    reps = [fake.name() for _ in range(NUM_REPS)]
    regions = list(LOCATIONS)
    rows = []
    for _ in range(NUM_ROWS):
        d = _rand_date()
        region = random.choices(regions, weights=REGION_WEIGHTS, k=1)[0]
        category = random.choice(list(CATEGORIES))
        lo, hi, cost_ratio = CATEGORIES[category]
        units = random.randint(1, 12)
        revenue = round(units * random.uniform(lo, hi), 2)
        cogs = round(revenue * random.uniform(cost_ratio - 0.08, cost_ratio + 0.08), 2)
        rows.append({
            "order_date": d,
            "year": d.year,
            "quarter": (d.month - 1) // 3 + 1,
            "month": d.month,
            "region": region,
            "state": random.choice(LOCATIONS[region]),
            "channel": random.choices(CHANNELS, weights=CHANNEL_WEIGHTS, k=1)[0],
            "product_category": category,
            "product_name": random.choice(products[category]),
            "sales_rep": random.choice(reps),
            "revenue": revenue,
            "units": units,
            "cogs": cogs,
        })
    return rows


# ── Bulk insert helper ───────────────────────────────────

def _bulk_insert(engine, table: str, rows: list[dict], batch_size: int = 2000):
    """Insert rows into *table* in batches using executemany-style VALUES."""
    if not rows:
        return
    cols = list(rows[0].keys())
    sql = text(
        f"INSERT INTO {table} ({', '.join(cols)}) "
        f"VALUES ({', '.join(f':{c}' for c in cols)})"
    )
    with engine.begin() as conn:
        for i in range(0, len(rows), batch_size):
            conn.execute(sql, rows[i : i + batch_size])
    print(f"  ✓ {table}: {len(rows):,} rows")


# ── Main ─────────────────────────────────────────────────

def main():
    print("═══ Sales Fact Seeder ═══")
    settings = get_settings()
    table = settings.fact_table_identifier
    engine = create_engine(settings.database_url, echo=False)

    print(f"Recreating {table} …")
    with engine.begin() as conn:
        conn.execute(text(DDL.format(table=table)))
        conn.execute(text(f"TRUNCATE TABLE {table}"))
        conn.execute(text(f"CREATE INDEX IF NOT EXISTS ix_{table.replace('.', '_')}_order_date ON {table} (order_date)"))

    print("Generating data …")
    rows = gen_rows(gen_products())

    print("Inserting …")
    _bulk_insert(engine, table, rows)

    print(f"\nDone -- seeded {len(rows):,} fact rows "
          f"({DATE_START.isoformat()} .. {DATE_END.isoformat()}).")


if __name__ == "__main__":
    main()
