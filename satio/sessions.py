"""Ad-watch sessions: single-use, time-boxed capabilities to claim a reward.

A session is issued before the ad plays and is consumed by the first credit
attempt that gets past the device check. Consumed sessions are kept for
idempotency; only stale unconsumed ones are ever deleted.
"""

import secrets
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .config import RewardPolicy
from .models import AdSessionRecord
from .tables import AdSession


class SessionStore:
    def __init__(self, policy: RewardPolicy):
        self.policy = policy

    def issue(self, db: Session, device_id: str, now_ms: int) -> AdSessionRecord:
        ad_session = AdSession(
            session_id=secrets.token_hex(16),
            device_id=device_id,
            created_at_ms=now_ms,
            used=False,
        )
        db.add(ad_session)
        db.flush()
        return AdSessionRecord.model_validate(ad_session)

    def lookup(self, db: Session, session_id: str, lock: bool = False) -> Optional[AdSessionRecord]:
        stmt = select(AdSession).where(AdSession.session_id == session_id)
        if lock:
            stmt = stmt.with_for_update()
        ad_session = db.execute(stmt).scalar_one_or_none()
        if ad_session is None:
            return None
        return AdSessionRecord.model_validate(ad_session)

    def is_expired(self, ad_session: AdSessionRecord, now_ms: int) -> bool:
        return now_ms - ad_session.created_at_ms > self.policy.session_ttl_ms

    def mark_consumed(self, db: Session, session_id: str) -> None:
        """Flip ``used`` to true. Safe to call on an already consumed session."""
        db.execute(
            update(AdSession)
            .where(AdSession.session_id == session_id, AdSession.used.is_(False))
            .values(used=True)
        )

    def sweep(self, db: Session, now_ms: int) -> int:
        """Delete unconsumed sessions older than the TTL. Returns the number removed."""
        cutoff = now_ms - self.policy.session_ttl_ms
        result = db.execute(
            delete(AdSession).where(
                AdSession.used.is_(False),
                AdSession.created_at_ms < cutoff,
            )
        )
        return result.rowcount or 0
