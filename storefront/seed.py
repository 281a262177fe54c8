import asyncio
import logging

import sqlalchemy as sa

from .common.database import init_db, AsyncSessionLocal
from .inventory.model import Product

_logger = logging.getLogger(__name__)

SAMPLE_PRODUCTS = [
    {"name": "Recurve Bow 68\"", "stock": 12, "price": 1850000, "description": "Takedown recurve for target archery"},
    {"name": "Carbon Arrow (dozen)", "stock": 40, "price": 720000, "description": "Spine 500 carbon shafts"},
    {"name": "Arm Guard", "stock": 60, "price": 95000, "description": "Adjustable leather arm guard"},
    {"name": "Finger Tab", "stock": 55, "price": 120000, "description": "Cordovan finger tab with plate"},
    {"name": "Back Quiver", "stock": 25, "price": 310000, "description": "Four-tube back quiver"},
    {"name": "Bow Stringer", "stock": 30, "price": 85000, "description": "Cord stringer for recurve bows"},
    {"name": "Target Face 80cm", "stock": 100, "price": 25000, "description": "WA standard paper target face"},
    {"name": "Bow Stand", "stock": 20, "price": 150000, "description": "Folding recurve stand"},
]


async def seed_products() -> int:
    """Insert the sample catalog, skipping products that already exist by name."""
    await init_db()
    async with AsyncSessionLocal() as session:
        added = 0
        for p in SAMPLE_PRODUCTS:
            res = await session.execute(sa.select(Product.id).where(Product.name == p["name"]))
            if res.first():
                continue
            session.add(Product(**p))
            added += 1
        if added:
            await session.commit()
    _logger.info("Seed complete | added=%s", added)
    return added


async def amain():
    logging.basicConfig(level=logging.INFO)
    await seed_products()


if __name__ == "__main__":
    asyncio.run(amain())
