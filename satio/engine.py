"""Credit engine: the single choke point for granting ad rewards.

Both triggers (the client's completion report and the ad network's
server-side verification callback) go through ``CreditEngine.credit`` with
the same session id. One transaction covers the session lookup, the quota
check and the reward insert:

    no such session            -> invalid_session
    session already used       -> duplicate (added=0)
    device differs             -> device_mismatch (session left unused)
    older than the TTL         -> expired, session consumed
    daily cap reached          -> quota_exceeded, session consumed
    otherwise                  -> session consumed, reward inserted

The session is consumed before the reward insert. The unique key on
``rewards.session_id`` catches anything that slips past the flag; such a
collision is reported as a duplicate.
"""

from typing import Optional

import structlog

from .clock import Clock, day_key
from .config import RewardPolicy
from .errors import MissingFieldError
from .ledger import Ledger
from .models import CreditOutcome, CreditSource, CreditStatus
from .sessions import SessionStore
from .storage import Storage
from .users import UserDirectory

logger = structlog.get_logger()


class CreditEngine:
    def __init__(
        self,
        storage: Storage,
        policy: RewardPolicy,
        clock: Optional[Clock] = None,
        sessions: Optional[SessionStore] = None,
        users: Optional[UserDirectory] = None,
        ledger: Optional[Ledger] = None,
    ):
        self.storage = storage
        self.policy = policy
        self.clock = clock or Clock()
        self.sessions = sessions or SessionStore(policy)
        self.users = users or UserDirectory()
        self.ledger = ledger or Ledger()

    def credit(self, device_id: Optional[str], session_id: Optional[str], source: CreditSource) -> CreditOutcome:
        if not device_id:
            raise MissingFieldError("device_id")
        if not session_id:
            raise MissingFieldError("session_id")
        source = CreditSource(source)

        with self.storage.transaction() as db:
            outcome = self._credit(db, device_id, session_id, source)

        self._log_outcome(device_id, outcome)
        return outcome

    def _credit(self, db, device_id: str, session_id: str, source: CreditSource) -> CreditOutcome:
        def result(status: CreditStatus, **kwargs) -> CreditOutcome:
            return CreditOutcome(status=status, session_id=session_id, source=source, **kwargs)

        ad_session = self.sessions.lookup(db, session_id, lock=True)
        if ad_session is None:
            return result(CreditStatus.INVALID_SESSION)
        if ad_session.used:
            return result(CreditStatus.DUPLICATE)
        if ad_session.device_id != device_id:
            return result(CreditStatus.DEVICE_MISMATCH)

        now = self.clock.now()
        if self.sessions.is_expired(ad_session, int(now.timestamp() * 1000)):
            self.sessions.mark_consumed(db, session_id)
            return result(CreditStatus.EXPIRED)

        # the user row lock serializes quota checks for one user across sessions
        user = self.users.get_or_create(db, device_id, lock=True)
        day = day_key(now)
        if self.ledger.count_for_day(db, user.id, day) >= self.policy.daily_max_rewards:
            self.sessions.mark_consumed(db, session_id)
            return result(CreditStatus.QUOTA_EXCEEDED)

        self.sessions.mark_consumed(db, session_id)
        reward = self.ledger.record_once(
            db,
            user_id=user.id,
            session_id=session_id,
            sats=self.policy.sats_per_reward,
            day=day,
            source=source,
            created_at=now,
        )
        if reward is None:
            return result(CreditStatus.DUPLICATE)
        return result(CreditStatus.CREDITED, added=reward.sats, reward=reward)

    def _log_outcome(self, device_id: str, outcome: CreditOutcome) -> None:
        log = logger.bind(device_id=device_id, session_id=outcome.session_id, source=outcome.source.value)
        if outcome.status == CreditStatus.CREDITED:
            log.info("reward_credited", added=outcome.added, day=outcome.reward.day)
        elif outcome.status == CreditStatus.DUPLICATE:
            log.info("credit_duplicate")
        else:
            log.warning("credit_denied", status=outcome.status.value)
