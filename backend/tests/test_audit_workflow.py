"""Tests for the propose / approve / reject workflow on products."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from fishstock.auth.identity import AdminIdentity
from fishstock.db.models import AuditEvent
from fishstock.errors import Conflict, InvalidState, NotFound, PermissionDenied, ValidationError
from fishstock.services import audit_service, product_service

from conftest import BUSINESS, OTHER_BUSINESS, worker_identity


async def _propose_addition(db, requester, product_id, boxes=5, kg=0.0):
    entry = await audit_service.propose(
        db, requester, "product", product_id, "stock_addition", {"box_change": boxes, "kg_change": kg}
    )
    await db.commit()
    return entry


# ── Propose ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_proposal_is_pending_and_changes_nothing(db, make_worker, make_product):
    worker = await make_worker()
    product = await make_product(quantity_box=10)

    entry = await _propose_addition(db, worker_identity(worker), product.product_id)

    assert entry.status == "pending"
    assert entry.requester_kind == "worker"
    assert entry.requester_id == worker.worker_id
    assert audit_service.entry_payload(entry) == {"box_change": 5, "kg_change": 0.0, "note": None}
    assert (await product_service.get_product(db, product.product_id)).quantity_box == 10


@pytest.mark.asyncio
async def test_one_pending_stock_change_per_product(db, admin, make_product):
    product = await make_product()
    await _propose_addition(db, admin, product.product_id)

    with pytest.raises(Conflict):
        await audit_service.propose(
            db, admin, "product", product.product_id, "stock_correction", {"box_change": -1}
        )
    # A different mutation key on the same product is fine.
    entry = await audit_service.propose(
        db, admin, "product", product.product_id, "product_edit", {"field": "price_per_kg", "new_value": "12.5"}
    )
    assert entry.mutation_key == "field:price_per_kg"
    assert audit_service.entry_payload(entry)["new_value"] == 12.5


@pytest.mark.asyncio
async def test_concurrent_proposals_only_one_wins(session_factory, admin, other_admin, make_product):
    product = await make_product()

    async def _propose(identity):
        async with session_factory() as session:
            try:
                await _propose_addition(session, identity, product.product_id)
                return "ok"
            except Conflict:
                return "conflict"

    results = await asyncio.gather(_propose(admin), _propose(other_admin))
    assert sorted(results) == ["conflict", "ok"]


@pytest.mark.asyncio
@pytest.mark.parametrize("mutation,payload", [
    ("stock_addition", {"box_change": -1}),
    ("stock_addition", {"box_change": 0, "kg_change": 0}),
    ("stock_correction", {}),
    ("product_edit", {"field": "quantity_box", "new_value": 3}),
    ("product_edit", {"field": "price_per_box", "new_value": "cheap"}),
    ("stock_addition", {"kg_change": float("inf")}),
    ("stock_correction", {"kg_change": float("nan")}),
    ("stock_correction", {"box_change": 0, "kg_change": float("-inf")}),
    ("product_edit", {"field": "price_per_kg", "new_value": float("nan")}),
    ("product_edit", {"field": "price_per_kg", "new_value": "Infinity"}),
    ("product_edit", {"field": "low_stock_threshold", "new_value": 1.5}),
    ("product_edit", {"field": "low_stock_threshold", "new_value": "2.5"}),
    ("teleport", {}),
])
async def test_invalid_payloads_are_rejected(db, admin, make_product, mutation, payload):
    product = await make_product()
    with pytest.raises(ValidationError):
        await audit_service.propose(db, admin, "product", product.product_id, mutation, payload)


@pytest.mark.asyncio
async def test_whole_number_threshold_is_accepted(db, admin, make_product):
    product = await make_product()
    entry = await audit_service.propose(
        db, admin, "product", product.product_id, "product_edit", {"field": "low_stock_threshold", "new_value": "7.0"}
    )
    assert audit_service.entry_payload(entry)["new_value"] == 7


@pytest.mark.asyncio
async def test_proposal_for_missing_product(db, admin):
    with pytest.raises(NotFound):
        await audit_service.propose(db, admin, "product", "nope", "stock_addition", {"box_change": 1})


@pytest.mark.asyncio
async def test_workers_may_only_propose_stock_changes(db, make_worker, make_product):
    worker = worker_identity(await make_worker())
    product = await make_product()
    with pytest.raises(PermissionDenied):
        await audit_service.propose(db, worker, "product", product.product_id, "product_delete", {})
    with pytest.raises(PermissionDenied):
        await audit_service.propose(
            db, worker, "product", product.product_id, "product_edit", {"field": "name", "new_value": "Carp"}
        )


# ── Approve ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_approve_applies_exactly_once(db, admin, make_worker, make_product):
    worker = worker_identity(await make_worker())
    product = await make_product(quantity_box=10, quantity_kg=50.0)
    entry = await _propose_addition(db, worker, product.product_id, boxes=3, kg=1.5)

    approved = await audit_service.approve(db, entry.entry_id, admin)
    await db.commit()
    assert approved.status == "approved"
    assert approved.approver_id == admin.subject
    assert approved.resolved_at is not None

    refreshed = await product_service.get_product(db, product.product_id)
    assert (refreshed.quantity_box, refreshed.quantity_kg) == (13, 51.5)

    third = AdminIdentity(subject="admin-3", email="third@fishstock.io", business_id=BUSINESS)
    with pytest.raises(InvalidState, match="already approved"):
        await audit_service.approve(db, entry.entry_id, third)
    await db.refresh(refreshed)
    assert refreshed.quantity_box == 13


@pytest.mark.asyncio
async def test_self_approval_is_forbidden_even_for_admins(db, admin, make_product):
    product = await make_product()
    entry = await _propose_addition(db, admin, product.product_id)

    with pytest.raises(PermissionDenied):
        await audit_service.approve(db, entry.entry_id, admin)
    assert (await audit_service.get_entry(db, entry.entry_id, admin)).status == "pending"


@pytest.mark.asyncio
async def test_workers_cannot_resolve_entries(db, admin, make_worker, make_product):
    worker = worker_identity(await make_worker())
    product = await make_product()
    entry = await _propose_addition(db, admin, product.product_id)

    with pytest.raises(PermissionDenied):
        await audit_service.approve(db, entry.entry_id, worker)
    with pytest.raises(PermissionDenied):
        await audit_service.reject(db, entry.entry_id, worker, "no")


@pytest.mark.asyncio
async def test_approve_unknown_entry(db, admin):
    with pytest.raises(NotFound):
        await audit_service.approve(db, "missing", admin)


@pytest.mark.asyncio
async def test_failed_application_leaves_entry_pending(session_factory, admin, other_admin, make_product):
    product = await make_product(quantity_box=2)
    async with session_factory() as session:
        entry = await audit_service.propose(
            session, admin, "product", product.product_id, "stock_correction", {"box_change": -5}
        )
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(InvalidState, match="negative stock"):
            await audit_service.approve(session, entry.entry_id, other_admin)
        await session.rollback()

    async with session_factory() as session:
        assert (await audit_service.get_entry(session, entry.entry_id, admin)).status == "pending"
        assert (await product_service.get_product(session, product.product_id)).quantity_box == 2


@pytest.mark.asyncio
async def test_concurrent_approvals_apply_once(session_factory, admin, other_admin, make_worker, make_product):
    worker = worker_identity(await make_worker())
    product = await make_product(quantity_box=10)
    async with session_factory() as session:
        entry = await _propose_addition(session, worker, product.product_id, boxes=4)

    async def _approve(identity):
        async with session_factory() as session:
            try:
                await audit_service.approve(session, entry.entry_id, identity)
                await session.commit()
                return "ok"
            except InvalidState:
                await session.rollback()
                return "already"

    results = await asyncio.gather(_approve(admin), _approve(other_admin))
    assert sorted(results) == ["already", "ok"]
    async with session_factory() as session:
        assert (await product_service.get_product(session, product.product_id)).quantity_box == 14


@pytest.mark.asyncio
async def test_deleting_a_product_auto_rejects_its_other_proposals(db, admin, other_admin, make_worker, make_product):
    worker = worker_identity(await make_worker())
    product = await make_product()
    stock_entry = await _propose_addition(db, worker, product.product_id)
    delete_entry = await audit_service.propose(db, admin, "product", product.product_id, "product_delete", {})
    await db.commit()

    await audit_service.approve(db, delete_entry.entry_id, other_admin)
    await db.commit()

    assert await product_service.get_product(db, product.product_id) is None
    sibling = await audit_service.get_entry(db, stock_entry.entry_id, admin)
    await db.refresh(sibling)
    assert sibling.status == "rejected"
    assert sibling.rejection_reason == "target resource deleted"
    assert sibling.approver_kind == "system"

    result = await db.execute(select(AuditEvent).where(AuditEvent.action == "auto_reject"))
    assert len(result.scalars().all()) == 1


# ── Reject ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_reject_requires_reason_and_frees_the_slot(db, admin, other_admin, make_product):
    product = await make_product(quantity_box=10)
    entry = await _propose_addition(db, admin, product.product_id)

    with pytest.raises(ValidationError):
        await audit_service.reject(db, entry.entry_id, other_admin, "   ")

    rejected = await audit_service.reject(db, entry.entry_id, other_admin, "count was wrong")
    await db.commit()
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "count was wrong"
    assert (await product_service.get_product(db, product.product_id)).quantity_box == 10

    with pytest.raises(InvalidState, match="already rejected"):
        await audit_service.approve(db, entry.entry_id, other_admin)

    # The pending slot is free again.
    again = await _propose_addition(db, admin, product.product_id)
    assert again.status == "pending"


# ── Reads ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_workers_only_see_their_own_entries(db, admin, make_worker, make_product):
    alice = worker_identity(await make_worker("alice@x.com"))
    bob = worker_identity(await make_worker("bob@x.com"))
    p1 = await make_product("Tilapia")
    p2 = await make_product("Catfish")
    alice_entry = await _propose_addition(db, alice, p1.product_id)
    bob_entry = await _propose_addition(db, bob, p2.product_id)

    assert [e.entry_id for e in await audit_service.list_entries(db, alice)] == [alice_entry.entry_id]
    assert len(await audit_service.list_entries(db, admin)) == 2
    assert len(await audit_service.list_entries(db, admin, status="approved")) == 0

    assert (await audit_service.get_entry(db, alice_entry.entry_id, alice)).entry_id == alice_entry.entry_id
    with pytest.raises(PermissionDenied):
        await audit_service.get_entry(db, bob_entry.entry_id, alice)
    with pytest.raises(ValidationError):
        await audit_service.list_entries(db, admin, status="bogus")


@pytest.mark.asyncio
async def test_lost_pending_key_race_keeps_earlier_work(db, admin, make_product, monkeypatch):
    product = await make_product()
    await _propose_addition(db, admin, product.product_id)

    # Earlier work in the same transaction.
    extra = await product_service.create_product(db, BUSINESS, name="Carp")

    async def _nothing_pending(db, pending_key):
        return None

    # Skip the pre-check so the unique pending key is what catches the duplicate.
    monkeypatch.setattr(audit_service, "_find_pending", _nothing_pending)
    with pytest.raises(Conflict):
        await audit_service.propose(db, admin, "product", product.product_id, "stock_addition", {"box_change": 1})
    await db.commit()

    assert await product_service.get_product(db, extra.product_id) is not None
    assert len(await audit_service.list_entries(db, admin)) == 1


# ── Business isolation ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_entries_never_cross_businesses(db, admin, make_product):
    outsider = AdminIdentity(subject="admin-9", email="rival@fishstock.io", business_id=OTHER_BUSINESS)
    ours = await make_product("Tilapia")
    theirs = await make_product("Catfish", business_id=OTHER_BUSINESS)

    with pytest.raises(PermissionDenied, match="another business"):
        await audit_service.propose(db, admin, "product", theirs.product_id, "stock_addition", {"box_change": 1})

    their_entry = await _propose_addition(db, outsider, theirs.product_id)
    our_entry = await _propose_addition(db, admin, ours.product_id)
    assert their_entry.business_id == OTHER_BUSINESS
    assert our_entry.business_id == BUSINESS

    with pytest.raises(PermissionDenied):
        await audit_service.approve(db, their_entry.entry_id, admin)
    with pytest.raises(PermissionDenied):
        await audit_service.reject(db, their_entry.entry_id, admin, "not yours")
    with pytest.raises(PermissionDenied):
        await audit_service.get_entry(db, their_entry.entry_id, admin)
    with pytest.raises(PermissionDenied):
        await audit_service.approve(db, our_entry.entry_id, outsider)

    assert [e.entry_id for e in await audit_service.list_entries(db, admin)] == [our_entry.entry_id]
    assert [e.entry_id for e in await audit_service.list_entries(db, outsider)] == [their_entry.entry_id]
    assert (await audit_service.get_entry(db, their_entry.entry_id, outsider)).status == "pending"
