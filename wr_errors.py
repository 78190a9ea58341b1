"""Error types raised by the weekly-report statistics pipeline."""

from __future__ import annotations


class WRError(Exception):
    """Base class for all pipeline errors."""

    kind = "WR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind} error: {self.message}"


class QueryError(WRError):
    """The search query could not be built (bad pattern count)."""

    kind = "Query"


class MailParseError(WRError):
    """A fetched message lacks a mandatory header or has a malformed one."""

    kind = "Mail parse"


class ConfigError(WRError):
    kind = "Config"


class ImapError(WRError):
    kind = "IMAP"
