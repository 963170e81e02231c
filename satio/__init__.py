"""
SATIO rewarded-ad crediting service

This package provides:
- Single-use, time-boxed ad sessions bound to a device
- Exactly-once reward crediting from either the client or the ad network
- A per-device daily cap on server-local calendar days
- Balance and admin stats readers over the reward ledger
"""

from .config import RewardPolicy, Settings, get_settings
from .engine import CreditEngine
from .errors import MissingFieldError, RewardServiceError, StorageError, UnauthorizedError
from .models import (
    CreditOutcome,
    CreditSource,
    CreditStatus,
    RewardEntry,
)
from .service import RewardService
from .storage import Storage

__all__ = [
    "RewardPolicy",
    "Settings",
    "get_settings",
    "CreditEngine",
    "MissingFieldError",
    "RewardServiceError",
    "StorageError",
    "UnauthorizedError",
    "CreditOutcome",
    "CreditSource",
    "CreditStatus",
    "RewardEntry",
    "RewardService",
    "Storage",
]
