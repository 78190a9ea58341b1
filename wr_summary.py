"""wr_summary.py

Reconstruct the weekly-report (WR) cadence for one year from an IMAP
mailbox and write the statistics file read by the dashboard.

    wr-stats                    # same as `wr-stats stats`
    wr-stats stats --year 2023 --holidays 6
    wr-stats list-mailboxes
    wr-stats show shared/stats.json
    wr-stats charts --output-dir charts
    wr-stats serve
"""

from __future__ import annotations

import argparse
import logging
import sys

from analytics import Stats, compute_stats, load_stats, print_summary_report, save_stats
from wr_config import AppConfig, load_config, resolve_credentials, with_overrides
from wr_errors import WRError
from wr_mail import MailClient, fetch_replies, fetch_wrs
from wr_reports import ReportSet, fill_missing_replies, merge_wrs

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def collect_reports(config: AppConfig, client: MailClient, deep_replies: bool = False) -> ReportSet:
    """Fetch sent reports and replies through *client* and pair them.

    With *deep_replies*, every report still unreplied after matching gets a
    second reply search pinned to its exact subject.
    """
    spec = config.query
    wrs = fetch_wrs(client, spec)
    replies = fetch_replies(client, spec)
    reports = merge_wrs(wrs, replies)

    if deep_replies:
        fill_missing_replies(
            reports,
            lambda sent: fetch_replies(client, spec, subject=sent.subject),
        )
    return reports


def run(config: AppConfig, client: MailClient, deep_replies: bool = False) -> Stats:
    """Run the whole pipeline once and write the stats file.

    Any fetch error aborts the run; nothing is written in that case.
    """
    reports = collect_reports(config, client, deep_replies=deep_replies)
    stats = compute_stats(reports, config.stats.num_holidays, year=config.query.year)
    save_stats(stats, config.stats.output)
    return stats


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _load(args: argparse.Namespace) -> AppConfig:
    config = load_config(args.config)
    return with_overrides(config, year=args.year, num_holidays=args.holidays, output=args.output)


def cmd_stats(args: argparse.Namespace) -> None:
    config = _load(args)
    login = resolve_credentials(config.login)
    with MailClient(login) as client:
        stats = run(config, client, deep_replies=args.deep_replies)
    print_summary_report(stats)


def cmd_list_mailboxes(args: argparse.Namespace) -> None:
    config = _load(args)
    with MailClient(resolve_credentials(config.login)) as client:
        client.list_mailboxes()


def _stats_path(args: argparse.Namespace) -> str:
    if args.path:
        return args.path
    return _load(args).stats.output


def cmd_show(args: argparse.Namespace) -> None:
    print_summary_report(load_stats(_stats_path(args)))


def cmd_charts(args: argparse.Namespace) -> None:
    from wr_viz import render_charts

    written = render_charts(load_stats(_stats_path(args)), args.output_dir)
    for path in written:
        logger.info("Saved %s", path)


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    import app as app_module

    config = _load(args)
    app_module.configure(config.stats.output)
    logger.info("Starting the web server at %s", config.server.address)
    uvicorn.run(app_module.app, host=config.server.host, port=config.server.port)


COMMANDS = {
    "stats": cmd_stats,
    "list-mailboxes": cmd_list_mailboxes,
    "show": cmd_show,
    "charts": cmd_charts,
    "serve": cmd_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wr-stats",
        description="Weekly report statistics from an IMAP mailbox",
    )
    parser.add_argument("--config", "-c", help="Path to the TOML config (default: config.toml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.set_defaults(
        year=None, holidays=None, output=None,
        deep_replies=False, path=None, output_dir="charts",
    )

    sub = parser.add_subparsers(dest="command")

    p_stats = sub.add_parser("stats", help="Fetch WRs and replies, compute and save stats")
    p_stats.add_argument("--year", "-y", type=int, help="Override the year to analyse")
    p_stats.add_argument("--holidays", type=int, help="Override the number of holiday weeks")
    p_stats.add_argument("--output", "-o", help="Override the stats file path")
    p_stats.add_argument("--deep-replies", action="store_true",
                         help="Search replies per report subject for unreplied WRs")

    sub.add_parser("list-mailboxes", help="List the mailboxes on the server")

    p_show = sub.add_parser("show", help="Print the summary of a saved stats file")
    p_show.add_argument("path", nargs="?", help="Stats file (default: from config)")

    p_charts = sub.add_parser("charts", help="Render histogram charts from a stats file")
    p_charts.add_argument("path", nargs="?", help="Stats file (default: from config)")
    p_charts.add_argument("--output-dir", default="charts", help="Directory for the PNG files")

    sub.add_parser("serve", help="Serve the stats dashboard")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Exits with status 1 on any pipeline error."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )

    try:
        COMMANDS[args.command or "stats"](args)
    except FileNotFoundError as e:
        logger.error("File not found: %s", e.filename or e)
        sys.exit(1)
    except (WRError, OSError, ValueError) as e:
        logger.error("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
