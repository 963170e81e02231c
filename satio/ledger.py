from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import CreditSource, RewardEntry
from .tables import Reward


class Ledger:
    """Append-only record of granted rewards, one per ad session."""

    def record_once(
        self,
        db: Session,
        user_id: int,
        session_id: str,
        sats: int,
        day: str,
        source: CreditSource,
        created_at: datetime,
    ) -> Optional[RewardEntry]:
        """Insert the reward for ``session_id``; ``None`` if one already exists."""
        reward = Reward(
            user_id=user_id,
            sats=sats,
            day=day,
            session_id=session_id,
            source=source.value,
            created_at=created_at,
        )
        try:
            with db.begin_nested():
                db.add(reward)
        except IntegrityError:
            return None
        return RewardEntry.model_validate(reward)

    def count_for_day(self, db: Session, user_id: int, day: str) -> int:
        stmt = select(func.count(Reward.id)).where(Reward.user_id == user_id, Reward.day == day)
        return db.execute(stmt).scalar_one()

    def total_for_user(self, db: Session, user_id: int) -> int:
        stmt = select(func.coalesce(func.sum(Reward.sats), 0)).where(Reward.user_id == user_id)
        return db.execute(stmt).scalar_one()

    def totals(self, db: Session, day: Optional[str] = None) -> tuple[int, int]:
        """(reward count, sats sum), optionally restricted to one day bucket."""
        stmt = select(func.count(Reward.id), func.coalesce(func.sum(Reward.sats), 0))
        if day is not None:
            stmt = stmt.where(Reward.day == day)
        count, sats = db.execute(stmt).one()
        return count, sats

    def entries_for_user(self, db: Session, user_id: int, limit: int = 50, offset: int = 0) -> list[RewardEntry]:
        stmt = (
            select(Reward)
            .where(Reward.user_id == user_id)
            .order_by(Reward.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [RewardEntry.model_validate(row) for row in db.execute(stmt).scalars()]

    def count_for_user(self, db: Session, user_id: int) -> int:
        return db.execute(select(func.count(Reward.id)).where(Reward.user_id == user_id)).scalar_one()
