"""Tests for depcache.utils.platform module."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from depcache.utils.platform import cpu_count, get_env, get_home_directory, get_os, is_windows


class TestGetOS:
    """Tests for get_os function."""

    @pytest.mark.parametrize(
        ("system", "expected"),
        [("Darwin", "macos"), ("Windows", "windows"), ("Linux", "linux"), ("FreeBSD", "linux")],
    )
    def test_maps_platform_names(self, system: str, expected: str):
        with patch("depcache.utils.platform.platform.system", return_value=system):
            assert get_os() == expected

    def test_is_windows(self):
        with patch("depcache.utils.platform.platform.system", return_value="Windows"):
            assert is_windows() is True
        with patch("depcache.utils.platform.platform.system", return_value="Linux"):
            assert is_windows() is False


class TestGetHomeDirectory:
    """Tests for get_home_directory function."""

    def test_uses_home_on_posix(self, monkeypatch: pytest.MonkeyPatch, temp_dir: Path):
        monkeypatch.setenv("HOME", str(temp_dir))

        with patch("depcache.utils.platform.is_windows", return_value=False):
            assert get_home_directory() == temp_dir

    def test_uses_userprofile_on_windows(self, monkeypatch: pytest.MonkeyPatch, temp_dir: Path):
        monkeypatch.setenv("USERPROFILE", str(temp_dir))

        with patch("depcache.utils.platform.is_windows", return_value=True):
            assert get_home_directory() == temp_dir


class TestGetEnv:
    """Tests for get_env function."""

    def test_returns_value(self):
        with patch.dict(os.environ, {"DEPCACHE_TEST_VAR": "value"}):
            assert get_env("DEPCACHE_TEST_VAR") == "value"

    def test_missing_uses_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert get_env("DEPCACHE_TEST_VAR", "fallback") == "fallback"

    def test_empty_counts_as_unset(self):
        with patch.dict(os.environ, {"DEPCACHE_TEST_VAR": ""}):
            assert get_env("DEPCACHE_TEST_VAR") is None


class TestCpuCount:
    def test_at_least_one(self):
        with patch("depcache.utils.platform.os.cpu_count", return_value=None):
            assert cpu_count() == 1
