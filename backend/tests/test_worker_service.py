"""Tests for the worker credential store."""

from __future__ import annotations

import pytest

from fishstock.errors import Conflict
from fishstock.services import worker_service

from conftest import BUSINESS, OTHER_BUSINESS, TEST_BCRYPT_ROUNDS


async def _create(db, email: str, business_id: str = BUSINESS):
    return await worker_service.create_worker(
        db,
        full_name="Test Worker",
        email=email,
        password="password123",
        business_id=business_id,
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
    )


@pytest.mark.asyncio
async def test_duplicate_email_race_keeps_earlier_work(db, make_worker, monkeypatch):
    await make_worker("a@x.com")
    alice = await _create(db, "alice@x.com")

    async def _not_found(db, email):
        return None

    # Skip the pre-check so the unique email column is what catches the duplicate.
    monkeypatch.setattr(worker_service, "get_worker_by_email", _not_found)
    with pytest.raises(Conflict):
        await _create(db, "A@x.com")
    await db.commit()

    assert await worker_service.get_worker_by_id(db, alice.worker_id) is not None


@pytest.mark.asyncio
async def test_listing_is_scoped_to_the_business(db, make_worker):
    await make_worker("a@x.com")
    await make_worker("b@x.com", business_id=OTHER_BUSINESS)

    ours = await worker_service.list_workers(db, BUSINESS)
    theirs = await worker_service.list_workers(db, OTHER_BUSINESS)
    assert [w.email for w in ours] == ["a@x.com"]
    assert [w.email for w in theirs] == ["b@x.com"]
    assert theirs[0].business_id == OTHER_BUSINESS


@pytest.mark.asyncio
async def test_emails_stay_unique_across_businesses(db, make_worker):
    await make_worker("a@x.com")
    with pytest.raises(Conflict):
        await _create(db, "a@x.com", business_id=OTHER_BUSINESS)
