"""Tests for core error hierarchy."""

from storylines.core.errors import (
    ConfigurationError,
    InvalidConfigError,
    InvalidInputError,
    MissingConfigError,
    ParseError,
    RateLimitExceeded,
    StorylinesError,
    UpstreamError,
    UpstreamFatalError,
    UpstreamTransientError,
    ValidationError,
)


class TestErrorHierarchy:
    """Test exception inheritance."""

    def test_all_errors_inherit_from_storylines_error(self):
        errors = [
            ValidationError("test"),
            InvalidInputError("query", "cannot be empty"),
            UpstreamError("test"),
            UpstreamTransientError("slow down", service="gemini", status_code=429),
            UpstreamFatalError("bad request", service="openlibrary", status_code=400),
            ParseError("not json", raw_text="oops"),
            RateLimitExceeded("search", 12.5),
            ConfigurationError("test"),
            MissingConfigError("GEMINI_API_KEY"),
            InvalidConfigError("retry.attempts", 0, "must be at least 1"),
        ]

        for error in errors:
            assert isinstance(error, StorylinesError)

    def test_upstream_errors_share_a_base(self):
        assert issubclass(UpstreamTransientError, UpstreamError)
        assert issubclass(UpstreamFatalError, UpstreamError)
        assert not issubclass(UpstreamFatalError, UpstreamTransientError)

    def test_invalid_input_is_validation_error(self):
        assert isinstance(InvalidInputError("index", "out of range"), ValidationError)


class TestErrorDetails:
    def test_to_dict(self):
        error = InvalidInputError("query", "is too long")
        data = error.to_dict()

        assert data["error"] is True
        assert data["error_code"] == "INVALID_INPUT"
        assert "query" in data["message"]
        assert data["details"] == {"field": "query", "reason": "is too long"}

    def test_upstream_error_keeps_status_and_cause(self):
        cause = RuntimeError("boom")
        error = UpstreamTransientError("failed", service="gemini", status_code=503, original_error=cause)

        assert error.service == "gemini"
        assert error.status_code == 503
        assert error.original_error is cause
        assert error.details == {"service": "gemini", "status_code": 503}

    def test_parse_error_keeps_raw_text(self):
        raw = "x" * 500
        error = ParseError("bad", raw_text=raw)

        assert error.raw_text == raw
        assert len(error.details["raw_text"]) == 200

    def test_rate_limit_message(self):
        error = RateLimitExceeded("search", 3.25)

        assert error.retry_after == 3.25
        assert "Retry after 3.2" in error.message or "Retry after 3.3" in error.message
        assert error.error_code == "RATE_LIMIT_EXCEEDED"

    def test_missing_config_message(self):
        error = MissingConfigError("GEMINI_API_KEY")
        assert "GEMINI_API_KEY" in str(error)
        assert error.details["source"] == "environment"
