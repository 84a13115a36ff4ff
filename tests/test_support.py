import asyncio

import httpx
import pytest

from avcatalog.errors import (
    ExternalServiceError,
    NotFoundError,
    RateLimitError,
    get_error_code_from_status,
    get_user_friendly_error_message,
    is_retryable_error,
)
from avcatalog.utils.config import ConfigManager
from avcatalog.utils.rate_limiter import SlidingWindowLimiter, get_rate_limiter
from avcatalog.utils.retry import with_retry


def test_error_codes_from_status():
    assert get_error_code_from_status(400) == "VALIDATION_ERROR"
    assert get_error_code_from_status(408) == "TIMEOUT"
    assert get_error_code_from_status(429) == "RATE_LIMITED"
    assert get_error_code_from_status(503) == "SERVER_ERROR"
    assert get_error_code_from_status(418) == "UNKNOWN"


def test_user_friendly_messages_fall_back_to_japanese():
    error = NotFoundError("Product", 42)
    assert str(error) == "Product not found: 42"

    assert get_user_friendly_error_message(error, "en") == "The page you are looking for was not found."
    assert get_user_friendly_error_message(error, "fr") == "お探しのページが見つかりませんでした。"
    assert get_user_friendly_error_message(RateLimitError(), "en").startswith("Too many requests")


def test_retryable_errors():
    request = httpx.Request("GET", "https://example.test")

    assert is_retryable_error(RateLimitError())
    assert is_retryable_error(httpx.ConnectError("down", request=request))
    assert is_retryable_error(ExternalServiceError("x", "duga", status_code=502))
    assert is_retryable_error(ExternalServiceError("x", "duga", status_code=429))
    assert not is_retryable_error(ExternalServiceError("x", "duga", status_code=404))
    assert not is_retryable_error(ValueError("nope"))


def test_with_retry_retries_until_success():
    attempts = []
    retried = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ExternalServiceError("boom", "duga", status_code=500)
        return "ok"

    result = asyncio.run(
        with_retry(flaky, max_retries=3, initial_delay=0, on_retry=lambda e, n, d: retried.append(n))
    )

    assert result == "ok"
    assert len(attempts) == 3
    assert retried == [1, 2]


def test_with_retry_stops_when_should_retry_refuses():
    attempts = []

    async def failing():
        attempts.append(1)
        raise ExternalServiceError("missing", "duga", status_code=404)

    with pytest.raises(ExternalServiceError):
        asyncio.run(
            with_retry(
                failing,
                max_retries=5,
                initial_delay=0,
                should_retry=lambda e, attempt: is_retryable_error(e),
            )
        )

    assert len(attempts) == 1


def test_sliding_window_limiter():
    limiter = SlidingWindowLimiter(max_requests=2, window_seconds=60)
    limiter.check()
    limiter.check()

    assert limiter.remaining == 0
    with pytest.raises(RateLimitError):
        limiter.check()


def test_rate_limiter_presets_and_overrides():
    assert get_rate_limiter("fc2").min_delay == 3.0
    assert get_rate_limiter("unknown").min_delay == 1.5

    limiter = get_rate_limiter("duga", {"duga": {"min_delay": 0.0, "jitter": 0.0}})
    assert (limiter.min_delay, limiter.jitter) == (0.0, 0.0)


def test_config_manager_merges_yaml_and_environment(tmp_path, monkeypatch):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "site:\n  mode: fanza\n  site_url: https://yaml.example\nsources:\n  duga:\n    max_items: 50\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DUGA_APP_ID", "env-app")
    monkeypatch.setenv("SITE_URL", "")
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = ConfigManager(config_file).config

    assert config.site.mode == "fanza"
    assert config.site.site_url == "https://yaml.example"
    assert config.sources.duga.app_id == "env-app"
    assert config.sources.duga.max_items == 50
    assert config.database.url == "sqlite:///data/db/catalog.db"


def test_config_manager_keeps_yaml_sections_unchanged(tmp_path, monkeypatch):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("sources:\n  duga:\n    max_items: 50\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DUGA_APP_ID", "env-app")

    manager = ConfigManager(config_file)

    assert manager.config.sources.duga.app_id == "env-app"
    assert manager.yaml_config == {"sources": {"duga": {"max_items": 50}}}


def test_config_manager_without_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    config = ConfigManager(tmp_path / "missing.yaml").config

    assert config.api.adjust_limit_offset_for_ids is True
    assert config.logging.level == "INFO"


def test_setup_logging_writes_main_and_crawl_logs(tmp_path):
    from loguru import logger

    from avcatalog.utils.logger import is_crawler_record, setup_logging

    assert is_crawler_record({"name": "avcatalog.crawlers.duga"})
    assert not is_crawler_record({"name": "avcatalog.api.main"})

    log_file = tmp_path / "logs" / "avcatalog.log"
    try:
        setup_logging("INFO", str(log_file))
        logger.info("hello from the tests")
    finally:
        logger.remove()

    assert "Logging initialized at INFO level" in log_file.read_text(encoding="utf-8")
    assert "hello from the tests" not in (tmp_path / "logs" / "crawl.log").read_text(encoding="utf-8")
