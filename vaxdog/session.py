"""
Per-request session context.

Identity and role are re-derived from the identity provider's answer on
every request and handed down explicitly; nothing is cached globally.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel

from vaxdog.database import InMemoryKeyValueDatabase
from vaxdog.errors import PermissionDenied
from vaxdog.identity import Identity
from vaxdog.models import AdminGrant, Role, UserProfile, admin_key, user_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    uid: str
    phone_number: str | None
    display_name: str | None
    role: Role
    is_admin: bool

    @property
    def is_doctor(self) -> bool:
        return self.role == Role.DOCTOR


def derive_session(
    db: InMemoryKeyValueDatabase[str, BaseModel],
    identity: Identity,
    *,
    now: datetime,
) -> SessionContext:
    with db.transaction() as txn:
        profile = txn.get(user_key(identity.uid))
        if not isinstance(profile, UserProfile):
            profile = UserProfile(
                uid=identity.uid,
                phone_number=identity.phone_number,
                display_name=identity.display_name,
                created_at=now,
            )
            txn.put(user_key(identity.uid), profile)
            logger.info(f"Created profile for user {identity.uid}")

    is_admin = bool(identity.phone_number) and isinstance(
        db.get(admin_key(identity.phone_number)), AdminGrant
    )

    return SessionContext(
        uid=identity.uid,
        phone_number=identity.phone_number,
        display_name=profile.display_name or identity.display_name,
        role=profile.role,
        is_admin=is_admin,
    )


def require_admin(session: SessionContext) -> SessionContext:
    if not session.is_admin:
        raise PermissionDenied("Admin access required")
    return session


def require_doctor(session: SessionContext) -> SessionContext:
    if not session.is_doctor:
        raise PermissionDenied("Doctor access required")
    return session
