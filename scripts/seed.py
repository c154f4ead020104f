"""
Seed reference data: expense categories and cost centers.
Run from the project root: python -m scripts.seed
Idempotent; existing names are left alone.
"""
import asyncio
import sys
import os
import uuid

# Ensure the project root is on sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
import structlog

from expense_api.database import AsyncSessionLocal, Base, engine
from expense_api.logging_config import setup_logging
import expense_api.models  # noqa: F401
from expense_api.models.lookup import Category, CostCenter

logger = structlog.get_logger()

# ---------- Fixed UUIDs ----------

CATEGORIES = {
    uuid.UUID("c0000000-0000-0000-0000-000000000001"): "Viagens",
    uuid.UUID("c0000000-0000-0000-0000-000000000002"): "Escritório",
    uuid.UUID("c0000000-0000-0000-0000-000000000003"): "Alimentação",
    uuid.UUID("c0000000-0000-0000-0000-000000000004"): "Equipamentos",
}

COST_CENTERS = {
    uuid.UUID("cc000000-0000-0000-0000-000000000001"): ("Institucional", "INST"),
    uuid.UUID("cc000000-0000-0000-0000-000000000002"): ("Babaçu", "BABA"),
    uuid.UUID("cc000000-0000-0000-0000-000000000003"): ("Operações", "OPS"),
}


async def seed(create_tables: bool = False):
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        existing = set((await db.execute(select(Category.name))).scalars().all())
        for cid, name in CATEGORIES.items():
            if name not in existing:
                db.add(Category(id=cid, name=name))
                logger.info("seed_category", name=name)

        existing = set((await db.execute(select(CostCenter.name))).scalars().all())
        for cid, (name, code) in COST_CENTERS.items():
            if name not in existing:
                db.add(CostCenter(id=cid, name=name, code=code))
                logger.info("seed_cost_center", name=name)

        await db.commit()
    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed(create_tables="--create-tables" in sys.argv))
