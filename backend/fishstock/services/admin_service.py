"""Admin identity references.

Admins live in the external identity provider; this table only remembers the
subjects that have been seen, so audit entries can be attributed to a
readable email.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fishstock.auth.identity import AdminIdentity
from fishstock.db.models import AdminAccount
from fishstock.utils.clock import utcnow

logger = logging.getLogger("fishstock.admins")


async def remember_admin(db: AsyncSession, identity: AdminIdentity) -> AdminAccount:
    account = await db.get(AdminAccount, identity.subject)
    now = utcnow()
    if account is not None:
        account.last_seen_at = now
        if identity.email and account.email != identity.email:
            account.email = identity.email
        await db.flush()
        return account

    account = AdminAccount(
        subject=identity.subject,
        email=identity.email,
        first_seen_at=now,
        last_seen_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(account)
            await db.flush()
    except IntegrityError:
        # Another request recorded the same subject first.
        return await db.get(AdminAccount, identity.subject)
    logger.info("First request from admin '%s' (%s)", identity.email, identity.subject)
    return account
