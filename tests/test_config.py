"""Tests for configuration management and validation.

Validates GlobalConfig behavior including:
- Environment variable loading precedence
- Pydantic validation rules
- Target URL construction
- Singleton cache behavior
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.settings import GlobalConfig
from src.scraper import build_targets


class TestGlobalConfigValidation:
    """Test suite for GlobalConfig validation rules."""

    def test_default_values_are_sane(self, mock_config: GlobalConfig) -> None:
        """Verify the test configuration keeps bounded, safe values."""
        assert mock_config.headless is True
        assert 1000 <= mock_config.navigation_timeout_ms <= 120000
        assert mock_config.poll_interval_ms < mock_config.poll_deadline_ms
        assert mock_config.exclude_historical_series is True
        assert mock_config.historical_series_label == "price"

    def test_ticker_is_uppercased(self, mock_config: GlobalConfig) -> None:
        assert mock_config.ticker == "TSLA"
        assert mock_config.exchange == "nasdaq"

    def test_navigation_timeout_is_bounded(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verify the navigation timeout cannot be unbounded."""
        from config.settings import get_config

        get_config.cache_clear()

        monkeypatch.setenv("NAVIGATION_TIMEOUT_MS", "600000")
        with pytest.raises(ValidationError):
            get_config()

        get_config.cache_clear()

        monkeypatch.setenv("NAVIGATION_TIMEOUT_MS", "0")
        with pytest.raises(ValidationError):
            get_config()

        get_config.cache_clear()

    def test_poll_interval_bounds(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from config.settings import get_config

        get_config.cache_clear()

        monkeypatch.setenv("POLL_INTERVAL_MS", "1")
        with pytest.raises(ValidationError) as exc_info:
            get_config()

        assert "poll_interval_ms" in str(exc_info.value).lower()

        get_config.cache_clear()

    def test_empty_timeframes_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from config.settings import get_config

        get_config.cache_clear()

        monkeypatch.setenv("TIMEFRAMES", "[]")
        with pytest.raises(ValidationError):
            get_config()

        get_config.cache_clear()

    def test_path_field_normalization(self, mock_config: GlobalConfig) -> None:
        assert isinstance(mock_config.log_dir, Path)

    def test_base_url_trailing_slash_normalization(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verify base_url always ends with trailing slash for URL joining."""
        from config.settings import get_config

        get_config.cache_clear()

        monkeypatch.setenv("BASE_URL", "https://example.com")
        config = get_config()
        assert config.base_url == "https://example.com/"

        get_config.cache_clear()


class TestWebhookUrlValidation:
    """Test suite for the delivery endpoint setting."""

    def test_blank_webhook_url_is_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("WEBHOOK_URL", "   ")

        assert get_config().webhook_url is None

        get_config.cache_clear()

    @pytest.mark.parametrize("invalid_url", ["ftp://hooks.example.com/x", "not a url", "/relative/path"])
    def test_non_http_webhook_url_rejected(
        self, monkeypatch: pytest.MonkeyPatch, invalid_url: str
    ) -> None:
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("WEBHOOK_URL", invalid_url)

        with pytest.raises(ValidationError):
            get_config()

        get_config.cache_clear()


class TestTargetConstruction:
    """Test suite for target expansion from configuration."""

    def test_targets_follow_timeframe_order(self, mock_config: GlobalConfig) -> None:
        targets = build_targets(mock_config)

        assert [t.label for t in targets] == ["1m", "3m"]
        assert targets[0].url == (
            "https://terminal.example.com/instrument/nasdaq/tsla/projection?tf=1m"
        )
        assert targets[1].url == "https://terminal.example.com/instrument/nasdaq/tsla/projection"

    def test_default_urls_out_of_the_box(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("TICKER", "EXCHANGE", "BASE_URL", "TIMEFRAMES", "TARGET_URLS", "DEFAULT_TIMEFRAME"):
            monkeypatch.delenv(name, raising=False)

        config = GlobalConfig(_env_file=None)

        assert [t.url for t in build_targets(config)] == [
            "https://terminal.forecaster.biz/instrument/nasdaq/tsla/projection?tf=1m",
            "https://terminal.forecaster.biz/instrument/nasdaq/tsla/projection",
        ]

    def test_default_timeframe_is_configurable(self, mock_config: GlobalConfig) -> None:
        config = mock_config.model_copy(update={"default_timeframe": "1m"})

        assert config.target_url("1m").endswith("/projection")
        assert config.target_url("3m").endswith("/projection?tf=3m")

    def test_target_url_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from config.settings import get_config

        get_config.cache_clear()
        monkeypatch.setenv("TARGET_URLS", '{"3m": "https://other.example.com/tsla"}')

        targets = build_targets(get_config())

        assert targets[1].url == "https://other.example.com/tsla"
        assert targets[0].url.endswith("projection?tf=1m")

        get_config.cache_clear()


class TestConfigSingletonBehavior:
    """Test suite for get_config() singleton caching."""

    def test_singleton_returns_same_instance(self, mock_config: GlobalConfig) -> None:
        from config.settings import get_config

        assert get_config() is get_config()

    def test_cache_clear_forces_new_instance(
        self, mock_config: GlobalConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from config.settings import get_config

        config1 = get_config()

        get_config.cache_clear()
        monkeypatch.setenv("TICKER", "nvda")

        config2 = get_config()

        assert config1 is not config2
        assert config2.ticker == "NVDA"

        get_config.cache_clear()

    def test_boolean_env_var_parsing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Verify boolean environment variables are parsed correctly."""
        from config.settings import get_config

        for env_value, expected in [("true", True), ("1", True), ("false", False), ("no", False)]:
            get_config.cache_clear()
            monkeypatch.setenv("FETCH_ONLY", env_value)
            assert get_config().fetch_only is expected, f"Failed for {env_value}"

        get_config.cache_clear()
