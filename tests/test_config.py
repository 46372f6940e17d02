"""
Tests for configuration loading and scheduler settings.
"""

import pendulum
import pytest

from servicebooker.adapters.settings_provider import DatabaseSettingsProvider, StaticSettingsProvider
from servicebooker.config import AppConfig, SchedulerConfig, default_rate_tiers
from servicebooker.domain.buffer_policy import AsymmetricSelfExemptBuffer, SymmetricUniversalBuffer
from servicebooker.domain.exceptions import ConfigurationUnavailable


class TestSchedulerConfig:
    def test_fallbacks_when_settings_absent(self):
        config = SchedulerConfig.from_settings(StaticSettingsProvider({}))

        assert config.buffer_before_hours == 2
        assert config.buffer_after_hours == 1
        assert config.default_slot_duration_hours == 2
        assert config.minimum_advance_hours == 1
        assert config.business_timezone is None

    def test_string_settings_are_parsed(self):
        provider = StaticSettingsProvider({
            "scheduler_buffer_before_hours": "0.5",
            "scheduler_buffer_after_hours": "",
            "scheduler_minimum_advance_hours": "4",
            "business_timezone": "America/Chicago",
        })

        config = SchedulerConfig.from_settings(provider)

        assert config.buffer_before_hours == 0.5
        assert config.buffer_after_hours == 1
        assert config.minimum_advance_hours == 4
        assert config.business_tz().name == "America/Chicago"

    def test_missing_timezone_surfaces_when_used(self):
        config = SchedulerConfig.from_settings(StaticSettingsProvider({}))

        with pytest.raises(ConfigurationUnavailable):
            config.business_tz()

    @pytest.mark.parametrize(
        "key,value",
        [
            ("scheduler_buffer_before_hours", "-1"),
            ("scheduler_buffer_after_hours", "soon"),
            ("scheduler_default_slot_duration_hours", "8"),
            ("scheduler_default_slot_duration_hours", "1.25"),
            ("scheduler_buffer_policy", "round_robin"),
            ("business_timezone", "Nowhere/Special"),
        ],
    )
    def test_invalid_settings(self, key, value):
        with pytest.raises(ConfigurationUnavailable):
            SchedulerConfig.from_settings(StaticSettingsProvider({key: value}))

    def test_scheduling_rules(self):
        config = SchedulerConfig(buffer_before_hours=3, minimum_advance_hours=1.5)

        rules = config.scheduling_rules()

        assert isinstance(rules.buffer_policy, AsymmetricSelfExemptBuffer)
        assert rules.buffer_policy.before == pendulum.duration(hours=3)
        assert rules.minimum_advance == pendulum.duration(minutes=90)

    def test_half_hour_default_duration_is_accepted(self):
        config = SchedulerConfig.from_settings(
            StaticSettingsProvider({"scheduler_default_slot_duration_hours": "2.5"})
        )

        assert config.default_slot_duration_hours == 2.5

    def test_symmetric_policy_selected_by_name(self):
        config = SchedulerConfig(buffer_policy="Symmetric_Universal")

        assert isinstance(config.make_buffer_policy(), SymmetricUniversalBuffer)


class TestDatabaseSettingsProvider:
    def test_round_trip(self, session_factory):
        provider = DatabaseSettingsProvider(session_factory)
        provider.set_settings({"business_timezone": "America/Denver", "scheduler_buffer_after_hours": 1.5})
        provider.set_settings({"scheduler_buffer_after_hours": 0.5})

        config = SchedulerConfig.from_settings(provider)

        assert config.business_timezone == "America/Denver"
        assert config.buffer_after_hours == 0.5
        assert config.buffer_before_hours == 2


class TestAppConfig:
    def test_load_from_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "database_url: 'sqlite:///test.db'\n"
            "log_level: debug\n"
            "settings:\n"
            "  business_timezone: 'America/Los_Angeles'\n"
            "  buffer_before_hours: 1\n"
            "rate_tiers:\n"
            "  - tier_name: Premium\n"
            "    tier_level: 2\n"
            "    day_of_week: 5\n"
            "    start: '17:00'\n"
            "    end: '22:00'\n"
            "    rate_multiplier: 1.5\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(config_path)

        assert config.log_level == "DEBUG"
        assert config.settings.buffer_before_hours == 1
        bands = config.rate_tier_bands()
        assert len(bands) == 1
        assert bands[0].time_start.hour == 17

    def test_resources_from_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "resources:\n"
            "  - id: north\n"
            "    name: North Depot\n"
            "  - id: annex\n"
            "    name: Annex\n"
            "    type: Office\n"
            "    is_active: false\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(config_path)

        resources = [r.to_resource() for r in config.resources]
        assert resources[0].resource_type == "Service Location"
        assert resources[1].resource_type == "Office"
        assert not resources[1].is_available

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("settings: [unclosed\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            AppConfig.load_from_yaml(config_path)

    def test_unquoted_times_are_rejected(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "rate_tiers:\n"
            "  - tier_name: Premium\n"
            "    tier_level: 2\n"
            "    day_of_week: 5\n"
            "    start: 17:00\n"
            "    end: 22:00\n",
            encoding="utf-8",
        )

        with pytest.raises(ValueError, match="quoted"):
            AppConfig.load_from_yaml(config_path)

    def test_default_rate_tiers(self):
        tiers = default_rate_tiers()

        assert len(tiers) == 31
        saturday = [t for t in tiers if t.day_of_week == 5]
        assert {t.tier_name for t in saturday} == {"Premium", "Emergency"}
