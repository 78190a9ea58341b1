"""Shared fixtures for wr-stats tests."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from analytics import Stats, save_stats
from wr_config import AppConfig, MailLogin, StatsConfig
from wr_query import QuerySpec


def _sample_stats() -> Stats:
    """Return a small, internally consistent Stats snapshot."""
    weekday_wr = {i: 0 for i in range(7)}
    weekday_wr.update({0: 1, 4: 2})
    weekday_reply = {i: 0 for i in range(7)}
    weekday_reply.update({4: 2})
    hour_wr = {i: 0 for i in range(24)}
    hour_wr.update({9: 1, 16: 2})
    hour_reply = {i: 0 for i in range(24)}
    hour_reply.update({16: 2})
    return Stats(
        num_wrs=3,
        num_replied_wrs=2,
        ratio_replied_wrs=2 / 3,
        num_skipped_wrs=43,
        avg_wr_delay=1.5,
        avg_reply_delay=0.5,
        weekday_wr_histogram=weekday_wr,
        weekday_reply_histogram=weekday_reply,
        hour_wr_histogram=hour_wr,
        hour_reply_histogram=hour_reply,
        cc_histogram={"alice": 2, "bob": 1},
        year=2023,
    )


@pytest.fixture()
def sample_stats() -> Stats:
    return _sample_stats()


@pytest.fixture()
def stats_file(tmp_path, sample_stats):
    """Path of a stats file written from ``sample_stats``."""
    path = tmp_path / "shared" / "stats.json"
    save_stats(sample_stats, str(path))
    return path


@pytest.fixture()
def query_spec() -> QuerySpec:
    return QuerySpec(
        pattern=("Weekly Report",),
        sender="me@example.com",
        recipient="boss@example.com",
        year=2023,
        wr_mailboxes=("Sent",),
        re_mailboxes=("INBOX",),
    )


@pytest.fixture()
def app_config(tmp_path, query_spec) -> AppConfig:
    return AppConfig(
        login=MailLogin(server="imap.example.com", username="me", password="secret"),
        query=query_spec,
        stats=StatsConfig(num_holidays=6, output=str(tmp_path / "out" / "stats.json")),
    )


@pytest.fixture()
def client(stats_file):
    """TestClient for app.py reading the sample stats file.

    Resets the module-level cache between tests.
    """
    import app as app_module

    with patch.object(app_module, "_cache", {"data": None, "built_at": 0.0}):
        with patch.object(app_module, "STATS_PATH", stats_file):
            with TestClient(app_module.app) as tc:
                yield tc
