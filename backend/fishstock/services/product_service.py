"""Product rows — the business data that approved audit entries mutate.

Only reads and creation are exposed directly.  Stock and field changes and
deletions are applied exclusively by :mod:`fishstock.services.mutations`
once an audit entry is approved.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, get_args

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.db.models import Product
from fishstock.errors import InvalidState, NotFound

logger = logging.getLogger("fishstock.products")

EditableField = Literal[
    "name",
    "box_to_kg_ratio",
    "cost_per_box",
    "cost_per_kg",
    "price_per_box",
    "price_per_kg",
    "low_stock_threshold",
]
EDITABLE_FIELDS: tuple[str, ...] = get_args(EditableField)

NUMERIC_FIELDS = {
    "box_to_kg_ratio": float,
    "cost_per_box": float,
    "cost_per_kg": float,
    "price_per_box": float,
    "price_per_kg": float,
    "low_stock_threshold": int,
}


async def list_products(db: AsyncSession, business_id: str) -> list[Product]:
    result = await db.execute(select(Product).where(Product.business_id == business_id).order_by(Product.name))
    return list(result.scalars().all())


async def get_product(db: AsyncSession, product_id: str) -> Product | None:
    return await db.get(Product, product_id)


async def require_product(db: AsyncSession, product_id: str) -> Product:
    product = await get_product(db, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


async def create_product(db: AsyncSession, business_id: str, **fields: Any) -> Product:
    product = Product(business_id=business_id, **fields)
    db.add(product)
    await db.flush()
    await db.refresh(product)
    logger.info("Created product '%s' (%s)", product.name, product.product_id)
    return product


# ── Appliers (called only from approved audit entries) ──────────


async def apply_stock_delta(db: AsyncSession, product_id: str, box_change: int, kg_change: float) -> Product:
    product = await require_product(db, product_id)
    new_box = product.quantity_box + box_change
    new_kg = round(product.quantity_kg + kg_change, 3)
    if new_box < 0 or new_kg < 0:
        raise InvalidState(
            f"Change would leave negative stock ({new_box} boxes, {new_kg} kg) for '{product.name}'"
        )
    product.quantity_box = new_box
    product.quantity_kg = new_kg
    await db.flush()
    return product


async def apply_field_edit(db: AsyncSession, product_id: str, field: str, value: Any) -> Product:
    if field not in EDITABLE_FIELDS:
        raise InvalidState(f"Field '{field}' cannot be edited")
    product = await require_product(db, product_id)
    setattr(product, field, value)
    await db.flush()
    return product


async def delete_product(db: AsyncSession, product_id: str) -> None:
    product = await require_product(db, product_id)
    await db.delete(product)
    await db.flush()
    logger.info("Deleted product '%s' (%s)", product.name, product_id)
