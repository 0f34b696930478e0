"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from modelweave.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PORT", raising=False)
        s = Settings(_env_file=None)
        assert s.sub_query_timeout_seconds == 30.0
        assert s.join_timeout_seconds == 60.0
        assert s.expression_cleanup == "rewrite"
        assert s.effective_port == 8000

    def test_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SUB_QUERY_TIMEOUT_SECONDS", "2.5")
        monkeypatch.setenv("EXPRESSION_CLEANUP", "reject")
        monkeypatch.setenv("SQLITE_SOURCES", '{"shop": "/data/shop.db"}')
        monkeypatch.setenv("PORT", "9000")
        s = Settings(_env_file=None)
        assert s.sub_query_timeout_seconds == 2.5
        assert s.expression_cleanup == "reject"
        assert s.sqlite_sources == {"shop": "/data/shop.db"}
        assert s.effective_port == 9000
