"""Tests for the Alembic database URL helpers."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from migrations.env_helpers import (
    get_database_url,
    libpq_dsn_to_url,
    normalize_url,
    parse_libpq_dsn,
)


class TestParseLibpqDsn:
    def test_plain_pairs(self):
        assert parse_libpq_dsn("dbname=stayline user=app host=h") == {
            "dbname": "stayline",
            "user": "app",
            "host": "h",
        }

    def test_quoted_value_with_escape(self):
        tokens = parse_libpq_dsn(r"user=u password='it\'s a pw'")
        assert tokens["password"] == "it's a pw"


class TestLibpqDsnToUrl:
    def test_cloudsql_socket(self):
        dsn = "dbname=stayline user=stayline-sa password=s3cret host=/cloudsql/proj:us-central1:inst"
        assert libpq_dsn_to_url(dsn) == (
            "postgresql+psycopg2://stayline-sa:s3cret@/stayline"
            "?host=%2Fcloudsql%2Fproj%3Aus-central1%3Ainst"
        )

    def test_tcp_host_default_port(self):
        dsn = "dbname=db user=u password=p host=myhost"
        assert libpq_dsn_to_url(dsn) == "postgresql+psycopg2://u:p@myhost:5432/db"

    def test_special_chars_encoded(self):
        result = libpq_dsn_to_url("dbname=db user=u@domain password=p@ss=word host=h port=5433")
        assert "u%40domain" in result
        assert "p%40ss%3Dword" in result
        assert result.endswith("@h:5433/db")

    def test_db_password_env_fallback(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "from-env")
        assert "from-env" in libpq_dsn_to_url("dbname=db user=u host=h")

    def test_dsn_password_wins(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "from-env")
        result = libpq_dsn_to_url("dbname=db user=u password=from-dsn host=h")
        assert "from-dsn" in result
        assert "from-env" not in result


class TestNormalizeUrl:
    @pytest.mark.parametrize("url", ["postgres://u:p@h/db", "postgresql://u:p@h/db"])
    def test_forces_driver(self, url):
        with patch.dict(os.environ, {}, clear=True):
            assert normalize_url(url) == "postgresql+psycopg2://u:p@h/db"

    def test_injects_db_password(self):
        with patch.dict(os.environ, {"DB_PASSWORD": "s3cret"}, clear=True):
            assert normalize_url("postgresql://u@h:5433/db") == "postgresql+psycopg2://u:s3cret@h:5433/db"


class TestGetDatabaseUrl:
    def test_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_database_url()

    def test_url_passthrough(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg2://u:p@h/db"}, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:p@h/db"

    def test_dsn_converted(self):
        dsn = "dbname=stayline user=sa password=pw host=/cloudsql/p:r:i"
        with patch.dict(os.environ, {"DATABASE_URL": dsn}, clear=True):
            assert get_database_url().startswith("postgresql+psycopg2://sa:pw@/stayline")
