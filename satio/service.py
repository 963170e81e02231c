import secrets
from typing import Optional

import structlog

from .clock import Clock, day_key
from .config import RewardPolicy, Settings, get_settings
from .engine import CreditEngine
from .errors import MissingFieldError, UnauthorizedError
from .ledger import Ledger
from .models import (
    BalanceResponse,
    CreditOutcome,
    CreditSource,
    IssuedSession,
    LedgerHistoryResponse,
    StatsResponse,
)
from .sessions import SessionStore
from .storage import Storage
from .users import UserDirectory

logger = structlog.get_logger()


class RewardService:
    """Entry point for every reward operation: sessions, credits, balances, stats."""

    def __init__(
        self,
        storage: Storage,
        policy: Optional[RewardPolicy] = None,
        admin_key: str = "change-me",
        clock: Optional[Clock] = None,
    ):
        self.storage = storage
        self.policy = policy or RewardPolicy()
        self.admin_key = admin_key
        self.clock = clock or Clock()
        self.sessions = SessionStore(self.policy)
        self.users = UserDirectory()
        self.ledger = Ledger()
        self.engine = CreditEngine(
            storage,
            self.policy,
            clock=self.clock,
            sessions=self.sessions,
            users=self.users,
            ledger=self.ledger,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> "RewardService":
        settings = settings or get_settings()
        storage = Storage(settings.database_url, timeout=settings.storage_timeout_seconds)
        return cls(storage, settings.reward_policy(), admin_key=settings.admin_key, clock=clock)

    def issue_session(self, device_id: Optional[str]) -> IssuedSession:
        if not device_id:
            raise MissingFieldError("device_id")

        with self.storage.transaction() as db:
            self.users.get_or_create(db, device_id)
            ad_session = self.sessions.issue(db, device_id, self.clock.now_ms())

        logger.info("ad_session_issued", device_id=device_id, session_id=ad_session.session_id)
        return IssuedSession(
            session_id=ad_session.session_id,
            ttl_seconds=self.policy.session_ttl_seconds,
        )

    def credit(
        self,
        device_id: Optional[str],
        session_id: Optional[str],
        source: CreditSource = CreditSource.CLIENT,
    ) -> CreditOutcome:
        return self.engine.credit(device_id, session_id, source)

    def handle_network_callback(
        self,
        device_id: Optional[str],
        session_id: Optional[str],
        transaction_id: Optional[str] = None,
    ) -> Optional[CreditOutcome]:
        """Credit on behalf of the ad network's verification callback.

        The network only needs an acknowledgement, so missing parameters and
        policy denials are logged and swallowed here. Storage errors still
        propagate; the network retrying is safe.
        """
        logger.info(
            "network_callback_received",
            device_id=device_id,
            session_id=session_id,
            transaction_id=transaction_id,
        )
        try:
            return self.engine.credit(device_id, session_id, CreditSource.NETWORK)
        except MissingFieldError as e:
            logger.warning("network_callback_rejected", reason=e.code, transaction_id=transaction_id)
            return None

    def get_balance(self, device_id: Optional[str]) -> BalanceResponse:
        if not device_id:
            raise MissingFieldError("device_id")

        today = day_key(self.clock.now())
        with self.storage.transaction() as db:
            user = self.users.get_or_create(db, device_id)
            total = self.ledger.total_for_user(db, user.id)
            today_count = self.ledger.count_for_day(db, user.id, today)

        return BalanceResponse(
            sats=total,
            today_rewards=today_count,
            daily_max=self.policy.daily_max_rewards,
            sats_per_reward=self.policy.sats_per_reward,
            min_withdraw=self.policy.min_withdraw_sats,
        )

    def get_history(self, device_id: Optional[str], limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
        if not device_id:
            raise MissingFieldError("device_id")

        with self.storage.transaction() as db:
            user = self.users.get_or_create(db, device_id)
            entries = self.ledger.entries_for_user(db, user.id, limit, offset)
            total_count = self.ledger.count_for_user(db, user.id)
            sats = self.ledger.total_for_user(db, user.id)

        return LedgerHistoryResponse(device_id=device_id, entries=entries, total_count=total_count, sats=sats)

    def get_stats(self, admin_key: Optional[str]) -> StatsResponse:
        if not admin_key or not secrets.compare_digest(admin_key.encode(), self.admin_key.encode()):
            raise UnauthorizedError("Unauthorized")

        today = day_key(self.clock.now())
        with self.storage.transaction() as db:
            users_total = self.users.count(db)
            rewards_today, sats_today = self.ledger.totals(db, day=today)
            rewards_total, sats_total = self.ledger.totals(db)

        return StatsResponse(
            day=today,
            users_total=users_total,
            rewards_today=rewards_today,
            sats_issued_today=sats_today,
            rewards_total=rewards_total,
            sats_issued_total=sats_total,
        )

    def sweep_stale_sessions(self) -> int:
        with self.storage.transaction() as db:
            removed = self.sessions.sweep(db, self.clock.now_ms())
        if removed:
            logger.info("stale_sessions_swept", removed=removed)
        return removed
