"""Tests for analytics.py statistics using synthetic report sets."""

from __future__ import annotations

import math

import pytest

from analytics import (
    compute_cc_histogram,
    compute_hour_histograms,
    compute_stats,
    compute_weekday_histograms,
    print_summary_report,
    reply_delay,
    wr_delay,
)
from helpers import make_address, make_envelope, make_report_set
from wr_reports import ReportRecord, ReportSet, merge_wrs


def _record(date: str, reply_date: str | None = None, cc=None) -> ReportRecord:
    reply = make_envelope(date=reply_date, in_reply_to="m") if reply_date else None
    return ReportRecord(sent=make_envelope(date=date, cc=cc, message_id="m"), reply=reply)


# ── wr_delay / reply_delay ──────────────────


class TestWrDelay:
    @pytest.mark.parametrize(
        "date, expected",
        [
            ("2023-01-06T10:00:00+00:00", 0),  # Friday
            ("2023-01-07T10:00:00+00:00", 1),  # Saturday
            ("2023-01-08T10:00:00+00:00", 2),  # Sunday
            ("2023-01-09T10:00:00+00:00", 3),  # Monday
            ("2023-01-12T10:00:00+00:00", 6),  # Thursday
        ],
    )
    def test_days_after_friday(self, date, expected):
        assert wr_delay(_record(date)) == expected

    def test_uses_local_offset(self):
        # Saturday 04:30 UTC, still Friday evening locally
        assert wr_delay(_record("2023-01-06T23:30:00-05:00")) == 0
        # Friday 23:00 UTC, already Saturday locally
        assert wr_delay(_record("2023-01-07T01:00:00+02:00")) == 1


class TestReplyDelay:
    def test_no_reply_is_none(self):
        assert reply_delay(_record("2023-01-06T10:00:00+00:00")) is None

    def test_whole_days(self):
        rec = _record("2023-01-06T10:00:00+00:00", "2023-01-09T09:00:00+00:00")
        assert reply_delay(rec) == 2

    def test_same_day(self):
        rec = _record("2023-01-06T10:00:00+00:00", "2023-01-06T18:00:00+00:00")
        assert reply_delay(rec) == 0

    def test_offsets_are_respected(self):
        rec = _record("2023-01-06T10:00:00+01:00", "2023-01-07T09:30:00+00:00")
        assert reply_delay(rec) == 1

    def test_negative_truncates_toward_zero(self):
        rec = _record("2023-01-06T10:00:00+00:00", "2023-01-04T22:00:00+00:00")
        assert reply_delay(rec) == -1


# ── Histograms ──────────────────────────────


class TestHistograms:
    def test_weekday_seeded_and_counted(self):
        reports = ReportSet([
            _record("2023-01-06T10:00:00+00:00", "2023-01-06T12:00:00+00:00"),
            _record("2023-01-09T10:00:00+00:00"),
        ])
        sent, replied = compute_weekday_histograms(reports)
        assert list(sent) == list(range(7))
        assert sent[4] == 1 and sent[0] == 1
        assert replied == {0: 0, 1: 0, 2: 0, 3: 0, 4: 1, 5: 0, 6: 0}

    def test_hour_histograms_bucket_sent_time(self):
        reports = ReportSet([
            _record("2023-01-06T16:45:00+01:00", "2023-01-09T08:00:00+01:00"),
        ])
        sent, replied = compute_hour_histograms(reports)
        assert list(sent) == list(range(24))
        assert sent[16] == 1
        assert replied[16] == 1
        assert replied[8] == 0

    def test_empty_histograms(self):
        sent, replied = compute_hour_histograms(ReportSet())
        assert sum(sent.values()) == 0
        assert len(replied) == 24

    def test_cc_histogram_counts_users(self):
        alice, bob = make_address("alice"), make_address("bob", host=None)
        nobody = make_address(None)
        reports = ReportSet([
            _record("2023-01-06T10:00:00+00:00", cc=[alice, bob]),
            _record("2023-01-13T10:00:00+00:00", cc=[alice, nobody]),
            _record("2023-01-20T10:00:00+00:00"),
        ])
        assert compute_cc_histogram(reports) == {"alice": 2, "bob": 1}

    def test_cc_histogram_ignores_reply_cc(self):
        reply = make_envelope(in_reply_to="m", cc=[make_address("carol")])
        reports = make_report_set([(make_envelope(message_id="m"), reply)])
        assert compute_cc_histogram(reports) == {}


# ── compute_stats ───────────────────────────


class TestComputeStats:
    def _reports(self) -> ReportSet:
        return ReportSet([
            # Friday, replied 1 day later
            _record("2023-01-06T16:00:00+01:00", "2023-01-07T17:00:00+01:00"),
            # Monday, unreplied
            _record("2023-01-16T09:00:00+01:00"),
            # Friday, replied 3 days later
            _record("2023-01-20T16:00:00+01:00", "2023-01-23T18:00:00+01:00"),
        ])

    def test_counts_and_ratio(self):
        stats = compute_stats(self._reports(), num_holidays=6, year=2023)
        assert stats.num_wrs == 3
        assert stats.num_replied_wrs == 2
        assert stats.ratio_replied_wrs == pytest.approx(2 / 3)
        assert stats.num_skipped_wrs == 52 - 6 - 3
        assert stats.year == 2023

    def test_avg_wr_delay_divides_by_replied(self):
        stats = compute_stats(self._reports(), num_holidays=0)
        # delays 0 + 3 + 0 over all reports, divided by 2 replied reports
        assert stats.avg_wr_delay == pytest.approx(1.5)

    def test_avg_reply_delay(self):
        stats = compute_stats(self._reports(), num_holidays=0)
        assert stats.avg_reply_delay == pytest.approx((1 + 3) / 2)

    def test_histogram_sums_match_counts(self):
        stats = compute_stats(self._reports(), num_holidays=0)
        assert sum(stats.weekday_wr_histogram.values()) == stats.num_wrs
        assert sum(stats.weekday_reply_histogram.values()) == stats.num_replied_wrs
        assert sum(stats.hour_wr_histogram.values()) == stats.num_wrs
        assert sum(stats.hour_reply_histogram.values()) == stats.num_replied_wrs

    def test_empty_report_set_is_zero_not_nan(self):
        stats = compute_stats(ReportSet(), num_holidays=4)
        assert stats.num_wrs == 0
        assert stats.ratio_replied_wrs == 0.0
        assert stats.avg_wr_delay == 0.0
        assert stats.avg_reply_delay == 0.0
        assert stats.num_skipped_wrs == 48
        assert not math.isnan(stats.ratio_replied_wrs)

    def test_no_replies_averages_are_zero(self):
        reports = ReportSet([_record("2023-01-09T10:00:00+00:00")])
        stats = compute_stats(reports, num_holidays=0)
        assert stats.ratio_replied_wrs == 0.0
        assert stats.avg_wr_delay == 0.0

    def test_skipped_can_go_negative(self):
        reports = ReportSet(
            _record(f"2023-01-{day:02d}T10:00:00+00:00") for day in range(1, 31)
        )
        stats = compute_stats(reports, num_holidays=30)
        assert stats.num_skipped_wrs == 52 - 30 - 30

    def test_ratio_in_unit_interval(self):
        stats = compute_stats(self._reports(), num_holidays=0)
        assert 0.0 <= stats.ratio_replied_wrs <= 1.0

    def test_unmatched_reply_does_not_count(self):
        sent = [make_envelope(message_id="m1")]
        replies = [make_envelope(in_reply_to="nope")]
        stats = compute_stats(merge_wrs(sent, replies), num_holidays=0)
        assert stats.num_replied_wrs == 0


# ── print_summary_report ────────────────────


class TestPrintSummaryReport:
    def test_prints_key_figures(self, sample_stats, capsys):
        print_summary_report(sample_stats)
        out = capsys.readouterr().out
        assert "Weekly Report Summary 2023" in out
        assert "WRs Sent: 3" in out
        assert "WRs Replied: 2 (67%)" in out
        assert "alice: 2" in out

    def test_empty_stats(self, capsys):
        print_summary_report(compute_stats(ReportSet(), num_holidays=0))
        out = capsys.readouterr().out
        assert "WRs Sent: 0" in out
        assert "Top CC Recipients" not in out
