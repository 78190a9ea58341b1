"""Render the WR histograms of a stats file as PNG bar charts."""

from __future__ import annotations

import os

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from analytics import WEEKDAYS, Stats


def histogram_frame(sent: dict[int, int], replied: dict[int, int], labels=None) -> pd.DataFrame:
    """Build a long-format frame (bucket, kind, count) from two histograms."""
    df = pd.DataFrame({"Sent": pd.Series(sent), "Replied": pd.Series(replied)}).fillna(0).sort_index()
    if labels is not None:
        df.index = [labels[i] for i in df.index]
    df.index.name = "bucket"
    return df.reset_index().melt(id_vars="bucket", var_name="kind", value_name="count")


def cc_frame(cc_histogram: dict[str, int], top: int = 15) -> pd.DataFrame:
    df = pd.DataFrame(
        sorted(cc_histogram.items(), key=lambda kv: (-kv[1], kv[0]))[:top],
        columns=["user", "count"],
    )
    return df


def _save_bar(df: pd.DataFrame, x: str, y: str, title: str, xlabel: str, path: str, hue: str | None = None) -> None:
    plt.figure(figsize=(12, 6))
    colors = {"hue": hue, "palette": "Set2"} if hue else {"color": "skyblue"}
    sns.barplot(data=df, x=x, y=y, **colors)
    plt.title(title, fontsize=14, pad=20)
    plt.xlabel(xlabel, fontsize=12)
    plt.ylabel("Number of WRs", fontsize=12)
    plt.grid(True, axis="y", alpha=0.3)
    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close()


def render_charts(stats: Stats, output_dir: str = "charts") -> list[str]:
    """Write weekday, hour and CC charts for *stats* into *output_dir*.

    Returns:
        Paths of the PNG files written.  The CC chart is only written when
        the CC histogram is not empty.
    """
    os.makedirs(output_dir, exist_ok=True)
    suffix = f" ({stats.year})" if stats.year is not None else ""
    written = []

    weekday = histogram_frame(
        stats.weekday_wr_histogram, stats.weekday_reply_histogram, labels=WEEKDAYS
    )
    path = os.path.join(output_dir, "wr_weekday.png")
    _save_bar(weekday, "bucket", "count", f"WRs by Weekday{suffix}", "Weekday", path, hue="kind")
    written.append(path)

    hour = histogram_frame(stats.hour_wr_histogram, stats.hour_reply_histogram)
    path = os.path.join(output_dir, "wr_hour.png")
    _save_bar(hour, "bucket", "count", f"WRs by Hour of Day{suffix}", "Hour", path, hue="kind")
    written.append(path)

    if stats.cc_histogram:
        path = os.path.join(output_dir, "wr_cc.png")
        _save_bar(cc_frame(stats.cc_histogram), "user", "count", f"People in CC{suffix}", "User", path)
        written.append(path)

    return written
