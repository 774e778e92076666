"""Unit tests for environment-driven defaults."""

import pytest

from sd_jwt_kit import config
from sd_jwt_kit.errors import ErrorCode, Result, UnusedDisclosure


class TestSettings:
    """Test environment parsing helpers."""

    @pytest.mark.unit
    def test_defaults(self):
        assert config.settings.salt_bytes >= 16
        assert config.settings.metadata_path.startswith("/.well-known/")

    @pytest.mark.unit
    def test_int_from_environment(self, monkeypatch):
        monkeypatch.setenv("SD_JWT_IAT_OFFSET", "60")
        assert config._get_int("SD_JWT_IAT_OFFSET", 300) == 60

    @pytest.mark.unit
    def test_empty_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("SD_JWT_HTTP_TIMEOUT", "")
        assert config._get_float("SD_JWT_HTTP_TIMEOUT", 10.0) == 10.0

    @pytest.mark.unit
    def test_invalid_value(self, monkeypatch):
        monkeypatch.setenv("SD_JWT_SALT_BYTES", "many")
        with pytest.raises(ValueError):
            config._get_int("SD_JWT_SALT_BYTES", 16)


class TestResult:
    """Test the result container returned by public operations."""

    @pytest.mark.unit
    def test_ok(self):
        result = Result.ok(42)
        assert result.is_ok
        assert result.get_or_raise() == 42

    @pytest.mark.unit
    def test_fail(self):
        error = UnusedDisclosure("1 disclosure(s) not referenced by any digest", count=1)
        result = Result.fail(error)

        assert not result.is_ok
        assert result.error.to_dict() == {
            "code": "UNUSED_DISCLOSURE",
            "message": "1 disclosure(s) not referenced by any digest",
            "details": {"count": 1},
        }
        with pytest.raises(UnusedDisclosure):
            result.get_or_raise()

    @pytest.mark.unit
    def test_default_message(self):
        assert UnusedDisclosure().message == ErrorCode.UNUSED_DISCLOSURE.value
