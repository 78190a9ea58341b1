"""Core statistics for weekly-report (WR) cadence analytics.

Computes counts, ratios, delays and histograms over a matched
:class:`~wr_reports.ReportSet`, and reads/writes the resulting snapshot as
the JSON file consumed by the dashboard (app.py) and the charts (wr_viz.py).
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from wr_reports import ReportRecord, ReportSet

logger = logging.getLogger(__name__)

WEEKS_PER_YEAR = 52
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

HISTOGRAM_FIELDS = (
    "weekday_wr_histogram",
    "weekday_reply_histogram",
    "hour_wr_histogram",
    "hour_reply_histogram",
)


@dataclass(frozen=True)
class Stats:
    """Snapshot of all WR statistics for one run.

    Field names match the keys of the persisted stats JSON.
    """

    num_wrs: int
    num_replied_wrs: int
    ratio_replied_wrs: float
    num_skipped_wrs: int
    avg_wr_delay: float
    avg_reply_delay: float
    weekday_wr_histogram: dict[int, int]
    weekday_reply_histogram: dict[int, int]
    hour_wr_histogram: dict[int, int]
    hour_reply_histogram: dict[int, int]
    cc_histogram: dict[str, int] = field(default_factory=dict)
    year: int | None = None


# ---------------------------------------------------------------------------
# Per-record metrics
# ---------------------------------------------------------------------------

def wr_delay(record: ReportRecord) -> int:
    """Days the report was sent after the most recent Friday.

    Reports are due on Fridays: Friday gives 0, Saturday 1, ... and
    Thursday 6.  Uses the weekday in the message's own UTC offset.
    """
    return (record.sent.date.weekday() + 3) % 7


def reply_delay(record: ReportRecord) -> int | None:
    """Whole days between sending and the reply, or None if unreplied.

    The value is signed and truncated toward zero; a reply stamped before
    the report yields a negative delay.
    """
    if record.reply is None:
        return None
    return int((record.reply.date - record.sent.date) / timedelta(days=1))


def _safe_div(num: float, den: float, default: float = 0.0) -> float:
    """Return ``num / den``, or *default* when *den* is zero."""
    return num / den if den else default


def _seeded_histogram(size: int) -> dict[int, int]:
    return {i: 0 for i in range(size)}


# ---------------------------------------------------------------------------
# Histograms
# ---------------------------------------------------------------------------

def compute_weekday_histograms(reports: ReportSet) -> tuple[dict[int, int], dict[int, int]]:
    """Count reports per send weekday (Monday=0), overall and replied-only.

    Both histograms bucket the *sent* timestamp and always contain all
    seven weekdays.
    """
    sent_hist = _seeded_histogram(7)
    reply_hist = _seeded_histogram(7)
    for record in reports:
        weekday = record.sent.date.weekday()
        sent_hist[weekday] += 1
        if record.replied:
            reply_hist[weekday] += 1
    return sent_hist, reply_hist


def compute_hour_histograms(reports: ReportSet) -> tuple[dict[int, int], dict[int, int]]:
    """Count reports per send hour (0-23), overall and replied-only."""
    sent_hist = _seeded_histogram(24)
    reply_hist = _seeded_histogram(24)
    for record in reports:
        hour = record.sent.date.hour
        sent_hist[hour] += 1
        if record.replied:
            reply_hist[hour] += 1
    return sent_hist, reply_hist


def compute_cc_histogram(reports: ReportSet) -> dict[str, int]:
    """Count how often each mailbox user appears in CC of the sent reports.

    Addresses without a local part are skipped.  Reply envelopes are not
    considered.
    """
    counts: Counter[str] = Counter()
    for record in reports:
        for addr in record.sent.cc or ():
            if addr.user:
                counts[addr.user] += 1
    return dict(counts)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

def compute_stats(reports: ReportSet, num_holidays: int, year: int | None = None) -> Stats:
    """Compute the full statistics snapshot for *reports*.

    Args:
        reports: Matched report records.
        num_holidays: Weeks off (vacation, sick leave, ...) in which no
            report was due.
        year: Calendar year the reports cover; stored as-is.

    Returns:
        A :class:`Stats` snapshot.  Ratios and averages with a zero
        denominator are 0.0.  ``num_skipped_wrs`` is not clamped and goes
        negative when more reports were sent than weeks were due.
        ``avg_wr_delay`` sums the delay of every report but divides by the
        number of replied reports.
    """
    num_wrs = len(reports)
    num_replied = reports.num_replied_wrs()

    wr_delay_sum = sum(wr_delay(r) for r in reports)
    reply_delays = [d for d in (reply_delay(r) for r in reports) if d is not None]

    weekday_wr, weekday_reply = compute_weekday_histograms(reports)
    hour_wr, hour_reply = compute_hour_histograms(reports)

    return Stats(
        num_wrs=num_wrs,
        num_replied_wrs=num_replied,
        ratio_replied_wrs=_safe_div(num_replied, num_wrs),
        num_skipped_wrs=WEEKS_PER_YEAR - num_holidays - num_wrs,
        avg_wr_delay=_safe_div(wr_delay_sum, num_replied),
        avg_reply_delay=_safe_div(sum(reply_delays), num_replied),
        weekday_wr_histogram=weekday_wr,
        weekday_reply_histogram=weekday_reply,
        hour_wr_histogram=hour_wr,
        hour_reply_histogram=hour_reply,
        cc_histogram=compute_cc_histogram(reports),
        year=year,
    )


# ---------------------------------------------------------------------------
# JSON persistence
# ---------------------------------------------------------------------------

def stats_to_dict(stats: Stats) -> dict[str, Any]:
    """Convert *stats* to the JSON object layout of the stats file.

    Histogram keys are stringified; ``year`` is only present when set.
    """
    data: dict[str, Any] = {}
    if stats.year is not None:
        data["year"] = stats.year
    data.update(
        {
            "num_wrs": stats.num_wrs,
            "num_replied_wrs": stats.num_replied_wrs,
            "ratio_replied_wrs": stats.ratio_replied_wrs,
            "num_skipped_wrs": stats.num_skipped_wrs,
            "avg_wr_delay": stats.avg_wr_delay,
            "avg_reply_delay": stats.avg_reply_delay,
        }
    )
    for name in HISTOGRAM_FIELDS:
        data[name] = {str(k): v for k, v in getattr(stats, name).items()}
    data["cc_histogram"] = dict(stats.cc_histogram)
    return data


def stats_from_dict(data: dict[str, Any]) -> Stats:
    """Inverse of :func:`stats_to_dict`.

    Raises:
        ValueError: If a required field is missing.
    """
    try:
        histograms = {
            name: {int(k): int(v) for k, v in data[name].items()}
            for name in HISTOGRAM_FIELDS
        }
        return Stats(
            num_wrs=data["num_wrs"],
            num_replied_wrs=data["num_replied_wrs"],
            ratio_replied_wrs=float(data["ratio_replied_wrs"]),
            num_skipped_wrs=data["num_skipped_wrs"],
            avg_wr_delay=float(data["avg_wr_delay"]),
            avg_reply_delay=float(data["avg_reply_delay"]),
            cc_histogram={str(k): int(v) for k, v in data["cc_histogram"].items()},
            year=data.get("year"),
            **histograms,
        )
    except KeyError as exc:
        raise ValueError(f"Stats file is missing field {exc.args[0]!r}") from exc


def save_stats(stats: Stats, path: str) -> None:
    """Write *stats* as pretty-printed UTF-8 JSON to *path*.

    Parent directories are created as needed and an existing file is
    overwritten.

    Raises:
        OSError: If the directory or file cannot be written.
    """
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(stats_to_dict(stats), f, indent=2, ensure_ascii=False)
    logger.info("Wrote stats to %s", path)


def load_stats(path: str) -> Stats:
    """Load a stats file written by :func:`save_stats`.

    Raises:
        FileNotFoundError: If the file at *path* does not exist.
        ValueError: If the file is not valid JSON or lacks a field
            (``json.JSONDecodeError`` is a ``ValueError``).
    """
    with open(path, "r", encoding="utf-8") as f:
        return stats_from_dict(json.load(f))


# ---------------------------------------------------------------------------
# CLI report
# ---------------------------------------------------------------------------

def _print_histogram(title: str, hist: dict, labels: dict | None = None) -> None:
    print(f"\n{title}:")
    peak = max(hist.values(), default=0)
    for key, count in hist.items():
        label = labels.get(key, key) if labels else key
        bar = "#" * round(count / peak * 30) if peak else ""
        print(f"  {label!s:<6} {count:>4} {bar}")


def print_summary_report(stats: Stats) -> None:
    """Print a human-readable summary of *stats* to stdout."""
    title = "Weekly Report Summary"
    if stats.year is not None:
        title = f"{title} {stats.year}"

    print(f"\n{'=' * 60}")
    print(title)
    print(f"{'=' * 60}")
    print(f"WRs Sent: {stats.num_wrs:,}")
    print(f"WRs Replied: {stats.num_replied_wrs:,} ({stats.ratio_replied_wrs:.0%})")
    print(f"WRs Skipped: {stats.num_skipped_wrs:,}")
    print(f"Average WR Delay: {stats.avg_wr_delay:.2f} days after Friday")
    print(f"Average Reply Delay: {stats.avg_reply_delay:.2f} days")

    _print_histogram("WRs by Weekday", stats.weekday_wr_histogram, dict(enumerate(WEEKDAYS)))
    _print_histogram("Replied WRs by Weekday", stats.weekday_reply_histogram, dict(enumerate(WEEKDAYS)))
    _print_histogram("WRs by Hour", stats.hour_wr_histogram)

    if stats.cc_histogram:
        print("\nTop CC Recipients:")
        top = sorted(stats.cc_histogram.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
        for user, count in top:
            print(f"  {user}: {count:,}")

    print(f"{'=' * 60}")
