"""Products API router.

Reads and creation are direct.  Every change to an existing product is a
proposal: the endpoint records a pending audit entry and answers 202; the
product only changes once a second principal approves the entry.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.deps import get_identity
from fishstock.auth.identity import Identity, describe
from fishstock.auth.rbac import Operation, Resource, require
from fishstock.db.engine import get_db
from fishstock.schemas.audit import AuditEntryOut
from fishstock.schemas.products import (
    ProductCreate,
    ProductDeleteRequest,
    ProductEditRequest,
    ProductOut,
    StockChangeRequest,
)
from fishstock.services import audit_service, product_service
from fishstock.services.activity_service import emit_audit

router = APIRouter()


@router.get("", response_model=list[ProductOut])
async def list_products(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require(identity, Operation.PRODUCT_READ)
    return await product_service.list_products(db, identity.business_id)


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    body: ProductCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require(identity, Operation.PRODUCT_CREATE)
    product = await product_service.create_product(db, identity.business_id, **body.model_dump())
    await emit_audit(
        db,
        category="product",
        action="create",
        actor=describe(identity),
        business_id=identity.business_id,
        description=f"Created product '{product.name}'",
        resource_type="product",
        resource_id=product.product_id,
    )
    return product


@router.get("/{product_id}", response_model=ProductOut)
async def get_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    require(identity, Operation.PRODUCT_READ, Resource("product", product_id))
    product = await product_service.require_product(db, product_id)
    require(identity, Operation.PRODUCT_READ, Resource("product", product_id, business_id=product.business_id))
    return product


# ── Proposals ──────────────────────────────────────────────────


@router.post("/{product_id}/stock-additions", response_model=AuditEntryOut, status_code=status.HTTP_202_ACCEPTED)
async def propose_stock_addition(
    product_id: str,
    body: StockChangeRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await audit_service.propose(db, identity, "product", product_id, "stock_addition", body.model_dump())


@router.post("/{product_id}/stock-corrections", response_model=AuditEntryOut, status_code=status.HTTP_202_ACCEPTED)
async def propose_stock_correction(
    product_id: str,
    body: StockChangeRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await audit_service.propose(db, identity, "product", product_id, "stock_correction", body.model_dump())


@router.post("/{product_id}/edits", response_model=AuditEntryOut, status_code=status.HTTP_202_ACCEPTED)
async def propose_edit(
    product_id: str,
    body: ProductEditRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await audit_service.propose(db, identity, "product", product_id, "product_edit", body.model_dump())


@router.post("/{product_id}/deletion", response_model=AuditEntryOut, status_code=status.HTTP_202_ACCEPTED)
async def propose_deletion(
    product_id: str,
    body: ProductDeleteRequest | None = None,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    payload = body.model_dump() if body is not None else {}
    return await audit_service.propose(db, identity, "product", product_id, "product_delete", payload)
