from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CreditSource(str, Enum):
    CLIENT = "client"
    NETWORK = "network"


class CreditStatus(str, Enum):
    CREDITED = "credited"
    DUPLICATE = "duplicate"
    INVALID_SESSION = "invalid_session"
    DEVICE_MISMATCH = "device_mismatch"
    EXPIRED = "expired"
    QUOTA_EXCEEDED = "quota_exceeded"


class UserRecord(BaseModel):
    id: int
    device_id: str

    model_config = ConfigDict(from_attributes=True)


class AdSessionRecord(BaseModel):
    session_id: str
    device_id: str
    created_at_ms: int
    used: bool

    model_config = ConfigDict(from_attributes=True)


class RewardEntry(BaseModel):
    id: int
    user_id: int
    sats: int
    day: str
    session_id: str
    source: CreditSource
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreditOutcome(BaseModel):
    status: CreditStatus
    session_id: str
    source: CreditSource
    added: int = 0
    reward: Optional[RewardEntry] = None

    @property
    def ok(self) -> bool:
        return self.status in (CreditStatus.CREDITED, CreditStatus.DUPLICATE)

    def consumes_session(self) -> bool:
        return self.status not in (CreditStatus.INVALID_SESSION, CreditStatus.DEVICE_MISMATCH)


# Wire models: camelCase on the wire, snake_case in Python.

class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeviceRequest(_WireModel):
    device_id: Optional[str] = None


class CreditRequest(_WireModel):
    device_id: Optional[str] = None
    session_id: Optional[str] = None


class IssuedSession(_WireModel):
    session_id: str
    ttl_seconds: int


class CreditResponse(_WireModel):
    ok: bool = True
    added: int
    duplicate: Optional[bool] = None


class BalanceResponse(_WireModel):
    sats: int
    today_rewards: int
    daily_max: int
    sats_per_reward: int
    min_withdraw: int


class StatsResponse(_WireModel):
    day: str
    users_total: int
    rewards_today: int
    sats_issued_today: int
    rewards_total: int
    sats_issued_total: int


class LedgerHistoryResponse(_WireModel):
    device_id: str
    entries: list[RewardEntry] = Field(default_factory=list)
    total_count: int
    sats: int
