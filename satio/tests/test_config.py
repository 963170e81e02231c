import pytest
from pydantic import ValidationError

from satio.clock import Clock, day_key
from satio.config import RewardPolicy, Settings
from satio.service import RewardService

from .conftest import ManualClock


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("SATIO_PORT", "SATIO_ADMIN_KEY", "SATIO_DAILY_MAX_REWARDS"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.port == 3001
        assert settings.admin_key == "change-me"
        assert settings.reward_policy() == RewardPolicy(
            sats_per_reward=100,
            daily_max_rewards=3,
            session_ttl_seconds=300,
            min_withdraw_sats=50000,
        )

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SATIO_DAILY_MAX_REWARDS", "5")
        monkeypatch.setenv("SATIO_ADMIN_KEY", "s3cret")

        settings = Settings(_env_file=None)

        assert settings.admin_key == "s3cret"
        assert settings.reward_policy().daily_max_rewards == 5

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, daily_max_rewards=0)


class TestRewardPolicy:
    def test_policy_is_frozen(self):
        policy = RewardPolicy()

        with pytest.raises(ValidationError):
            policy.daily_max_rewards = 10

    def test_ttl_in_milliseconds(self):
        assert RewardPolicy(session_ttl_seconds=5).session_ttl_ms == 5000

    def test_custom_policy_drives_engine(self, storage):
        """Test that the engine uses the policy it was built with."""
        policy = RewardPolicy(sats_per_reward=250, daily_max_rewards=1)
        service = RewardService(storage, policy, clock=ManualClock())

        first = service.issue_session("dev")
        second = service.issue_session("dev")

        assert service.credit("dev", first.session_id).added == 250
        assert service.credit("dev", second.session_id).status.value == "quota_exceeded"
        assert service.get_balance("dev").sats_per_reward == 250

    def test_from_settings(self, tmp_path):
        settings = Settings(
            _env_file=None,
            database_url=f"sqlite:///{tmp_path / 'cfg.sqlite'}",
            admin_key="k",
            sats_per_reward=42,
        )

        service = RewardService.from_settings(settings)

        assert service.admin_key == "k"
        assert service.policy.sats_per_reward == 42
        assert service.storage.url == settings.database_url
        service.storage.dispose()


class TestDayPartition:
    def test_day_key_format(self):
        clock = ManualClock()
        assert day_key(clock.now()) == "2026-03-14"

    def test_day_key_rolls_over_at_local_midnight(self):
        clock = ManualClock()
        clock.current = clock.current.replace(hour=23, minute=59, second=59)
        before = day_key(clock.now())
        clock.advance(seconds=1)

        assert before == "2026-03-14"
        assert day_key(clock.now()) == "2026-03-15"

    def test_system_clock_is_timezone_aware(self):
        now = Clock().now()
        assert now.tzinfo is not None
        assert abs(Clock().now_ms() - int(now.timestamp() * 1000)) < 5000
