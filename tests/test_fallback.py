"""Tests for store-failure policies."""

import logging

import pytest
import redis

from limitgate.app.exceptions import ConfigurationError, StoreUnavailable
from limitgate.app.ratelimit.fallback import (
    FailClosedPolicy,
    FailOpenPolicy,
    get_fallback_policy,
)
from limitgate.app.ratelimit.models import RateLimitRule


@pytest.fixture
def rule():
    return RateLimitRule(capacity=5, window_ms=1000)


@pytest.fixture
def error():
    cause = redis.ConnectionError("connection refused")
    return StoreUnavailable("Redis increment failed", cause=cause)


class TestFailOpenPolicy:
    """Tests for fail-open resolution."""

    def test_allows(self, rule, error):
        verdict = FailOpenPolicy().resolve(error, "rate_limit:/hello", rule, window_key="rate_limit:/hello:1")
        assert verdict.allowed is True
        assert verdict.fallback is True
        assert verdict.count is None
        assert verdict.limit == 5
        assert verdict.window_key == "rate_limit:/hello:1"

    def test_logs_warning(self, rule, error, caplog):
        with caplog.at_level(logging.WARNING, logger="limitgate.app.ratelimit.fallback"):
            FailOpenPolicy().resolve(error, "rate_limit:/hello", rule)

        assert any("fail-open" in r.getMessage() for r in caplog.records)
        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.resource_key == "rate_limit:/hello"
        assert record.policy == "fail-open"
        assert "ConnectionError" in record.getMessage()


class TestFailClosedPolicy:
    """Tests for fail-closed resolution."""

    def test_denies(self, rule, error):
        verdict = FailClosedPolicy().resolve(error, "rate_limit:/hello", rule, reset_at_ms=2000)
        assert verdict.allowed is False
        assert verdict.fallback is True
        assert verdict.reset_at_ms == 2000

    def test_logs_warning(self, rule, error, caplog):
        with caplog.at_level(logging.WARNING, logger="limitgate.app.ratelimit.fallback"):
            FailClosedPolicy().resolve(error, "rate_limit:/hello", rule)
        assert caplog.records[-1].policy == "fail-closed"


class TestGetFallbackPolicy:
    """Tests for policy lookup by configured name."""

    def test_default_is_fail_open(self):
        assert isinstance(get_fallback_policy(), FailOpenPolicy)

    @pytest.mark.parametrize("name", ["fail-open", "FAIL-OPEN", "fail_open", " fail-open "])
    def test_fail_open_spellings(self, name):
        assert isinstance(get_fallback_policy(name), FailOpenPolicy)

    @pytest.mark.parametrize("name", ["fail-closed", "fail_closed", "Fail-Closed"])
    def test_fail_closed_spellings(self, name):
        assert isinstance(get_fallback_policy(name), FailClosedPolicy)

    @pytest.mark.parametrize("name", ["", "open", "deny", "fail-silent"])
    def test_unknown_name_is_configuration_error(self, name):
        with pytest.raises(ConfigurationError):
            get_fallback_policy(name)
