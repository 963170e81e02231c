from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import UserRecord
from .tables import User


class UserDirectory:
    """Maps external device ids to internal user ids, creating users on first contact."""

    def get_or_create(self, db: Session, device_id: str, lock: bool = False) -> UserRecord:
        user = self._find(db, device_id, lock)
        if user is None:
            try:
                with db.begin_nested():
                    db.add(User(device_id=device_id))
            except IntegrityError:
                # another transaction created it first
                pass
            user = self._find(db, device_id, lock)
        return UserRecord.model_validate(user)

    def count(self, db: Session) -> int:
        return db.execute(select(func.count(User.id))).scalar_one()

    def _find(self, db: Session, device_id: str, lock: bool):
        stmt = select(User).where(User.device_id == device_id)
        if lock:
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalar_one_or_none()
