"""Tests for rate limiting utilities."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest
from kubernetes.client.exceptions import ApiException

from pullsecret_rotator.utils.rate_limit import is_rate_limit_error, rate_limit_k8s


class TestRateLimitK8s:
    """Test cases for Kubernetes API rate limiting."""

    def test_rate_limit_k8s_decorator(self):
        """Test that k8s rate limiting decorator works."""
        call_count = 0

        @rate_limit_k8s
        def test_func():
            nonlocal call_count
            call_count += 1
            return "success"

        assert test_func() == "success"
        assert call_count == 1

    def test_rate_limit_k8s_with_args(self):
        """Test rate limiting with function arguments."""
        @rate_limit_k8s
        def test_func(a, b, c=None):
            return f"{a}-{b}-{c}"

        assert test_func("x", "y", c="z") == "x-y-z"

    @patch("pullsecret_rotator.utils.rate_limit._K8S_RATE_LIMIT_PER_SECOND", 100.0)
    def test_rate_limit_k8s_enforces_rate(self):
        """Test that rate limiting enforces minimum interval."""
        call_times = []

        @rate_limit_k8s
        def test_func():
            call_times.append(time.time())
            return "ok"

        for _ in range(3):
            test_func()

        # With 100 calls/sec, minimum interval is 0.01 seconds
        assert call_times[1] - call_times[0] >= 0.009
        assert call_times[2] - call_times[1] >= 0.009

    @patch("pullsecret_rotator.utils.rate_limit.time.sleep")
    def test_throttled_call_is_retried_with_backoff(self, mock_sleep):
        """Test that 429 responses are retried with exponential backoff."""
        attempts = []

        @rate_limit_k8s
        def test_func():
            attempts.append(1)
            if len(attempts) < 3:
                raise ApiException(status=429, reason="Too Many Requests")
            return "ok"

        assert test_func() == "ok"
        assert len(attempts) == 3
        backoff = [c[0][0] for c in mock_sleep.call_args_list if c[0][0] >= 1]
        assert backoff == [1, 2]

    @patch("pullsecret_rotator.utils.rate_limit.time.sleep")
    def test_retries_are_bounded(self, mock_sleep):
        """Test that persistent throttling eventually propagates."""
        attempts = []

        @rate_limit_k8s
        def test_func():
            attempts.append(1)
            raise ApiException(status=429, reason="Too Many Requests")

        with pytest.raises(ApiException):
            test_func()
        assert len(attempts) == 4

    def test_other_errors_propagate_immediately(self):
        """Test that non-throttling errors are not retried."""
        attempts = []

        @rate_limit_k8s
        def test_func():
            attempts.append(1)
            raise ApiException(status=404, reason="Not Found")

        with pytest.raises(ApiException):
            test_func()
        assert len(attempts) == 1


class TestIsRateLimitError:
    """Test cases for throttling detection."""

    def test_429(self):
        assert is_rate_limit_error(ApiException(status=429, reason="Too Many Requests"))

    def test_503_with_rate_limit(self):
        assert is_rate_limit_error(ApiException(status=503, reason="Service Unavailable: rate limit exceeded"))

    def test_503_without_rate_limit(self):
        assert not is_rate_limit_error(ApiException(status=503, reason="Service Unavailable"))

    def test_other_exceptions(self):
        assert not is_rate_limit_error(ApiException(status=404, reason="Not Found"))
        assert not is_rate_limit_error(ValueError("429"))
