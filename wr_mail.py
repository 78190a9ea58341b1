"""Mail envelopes and the IMAP session that fetches them.

An :class:`Envelope` is the normalized header record of one message: date,
subject, CC addresses and the two threading identifiers.  :class:`MailClient`
wraps an ``imaplib`` session and turns search results into envelopes.
"""

from __future__ import annotations

import email
import imaplib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.header import decode_header, make_header
from email.utils import getaddresses, parsedate_to_datetime

from wr_config import MailLogin
from wr_errors import ImapError, MailParseError
from wr_query import QuerySpec, build_search_query, reply_spec

logger = logging.getLogger(__name__)

HEADER_FIELDS = "DATE SUBJECT CC IN-REPLY-TO MESSAGE-ID"
FETCH_PARTS = f"(BODY.PEEK[HEADER.FIELDS ({HEADER_FIELDS})])"

_FOLDING = re.compile(r"\r?\n[ \t]+")
_LIST_LINE = re.compile(r'\((?P<flags>[^)]*)\) (?P<delim>"[^"]*"|NIL) (?P<name>.+)')


@dataclass(frozen=True)
class Address:
    """One mailbox address.

    ``user`` is the local part before the ``@``; ``email`` is only set when
    both the local part and the host are known.
    """

    name: str | None = None
    user: str | None = None
    email: str | None = None

    @classmethod
    def from_header(cls, display_name: str, addr: str) -> "Address":
        user = host = None
        if addr:
            local, sep, domain = addr.partition("@")
            user = local or None
            host = domain if sep and domain else None
        return cls(
            name=display_name or None,
            user=user,
            email=f"{user}@{host}" if user and host else None,
        )


@dataclass(frozen=True)
class Envelope:
    """Normalized header record of a fetched message."""

    date: datetime
    subject: str
    cc: tuple[Address, ...] | None = None
    in_reply_to: str | None = None
    message_id: str | None = None


def _unfold(value: str) -> str:
    return _FOLDING.sub(" ", value).strip()


def _decode_header(value: str) -> str:
    """Decode an RFC 2047 encoded header into text."""
    try:
        return str(make_header(decode_header(value)))
    except (LookupError, UnicodeDecodeError):
        return value


def _parse_date(raw: str) -> datetime:
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError) as exc:
        raise MailParseError(f"Invalid Date header {raw!r}: {exc}") from exc
    if parsed is None:
        raise MailParseError(f"Invalid Date header {raw!r}")
    if parsed.tzinfo is None:
        # RFC 2822 "-0000" means UTC with no local offset information
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional(msg: email.message.Message, name: str) -> str | None:
    value = msg.get(name)
    if value is None:
        return None
    value = _unfold(str(value))
    return value or None


def parse_envelope(raw: bytes | str) -> Envelope:
    """Parse a raw header block into an :class:`Envelope`.

    Args:
        raw: RFC 822 header text, as returned by a ``HEADER.FIELDS`` fetch.

    Returns:
        The parsed envelope.  Optional headers that are absent or empty
        become ``None``.

    Raises:
        MailParseError: If the Date or Subject header is missing, or the
            date cannot be parsed.
    """
    if isinstance(raw, bytes):
        msg = email.message_from_bytes(raw)
    else:
        msg = email.message_from_string(raw)

    date_raw = msg.get("Date")
    if date_raw is None:
        raise MailParseError("No date in the envelope")
    subject_raw = msg.get("Subject")
    if subject_raw is None:
        raise MailParseError("No subject in the envelope")

    cc = None
    cc_values = msg.get_all("Cc")
    if cc_values:
        pairs = getaddresses([_unfold(str(v)) for v in cc_values])
        cc = tuple(Address.from_header(_decode_header(name), addr) for name, addr in pairs)

    return Envelope(
        date=_parse_date(_unfold(str(date_raw))),
        subject=_decode_header(_unfold(str(subject_raw))),
        cc=cc,
        in_reply_to=_optional(msg, "In-Reply-To"),
        message_id=_optional(msg, "Message-ID"),
    )


def _quote_mailbox(name: str) -> str:
    if name.startswith('"') or not re.search(r'[\s"\\]', name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _parse_list_line(line: bytes | str) -> str | None:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    match = _LIST_LINE.match(line)
    if not match:
        return None
    name = match.group("name").strip()
    if len(name) >= 2 and name[0] == name[-1] == '"':
        name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return name


class MailClient:
    """IMAP session used to search and fetch report envelopes.

    Use as a context manager: the connection is opened and logged in on
    enter and logged out on exit.
    """

    def __init__(self, login: MailLogin):
        self.login = login
        self.connection: imaplib.IMAP4 | None = None

    def __enter__(self) -> "MailClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.logout()

    def connect(self) -> None:
        """Open the connection and authenticate."""
        server, port = self.login.server, self.login.port
        logger.info("Connecting to %s:%d", server, port)
        try:
            if port == 143:
                self.connection = imaplib.IMAP4(server, port)
            else:
                self.connection = imaplib.IMAP4_SSL(server, port)
            self.connection.login(self.login.username, self.login.password)
        except (imaplib.IMAP4.error, OSError) as exc:
            self.connection = None
            raise ImapError(f"Could not log in to {server}:{port}: {exc}") from exc

    def logout(self) -> None:
        if self.connection is None:
            return
        try:
            self.connection.logout()
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.warning("Logout failed: %s", exc)
        finally:
            self.connection = None

    def _conn(self) -> imaplib.IMAP4:
        if self.connection is None:
            raise ImapError("Not connected")
        return self.connection

    def list_mailboxes(self) -> list[str]:
        """Return (and log) the names of all mailboxes on the server."""
        try:
            typ, data = self._conn().list()
        except imaplib.IMAP4.error as exc:
            raise ImapError(f"LIST failed: {exc}") from exc
        if typ != "OK":
            raise ImapError(f"LIST failed: {data!r}")

        names = [n for n in (_parse_list_line(line) for line in data if line) if n]
        logger.info("Mailboxes:")
        for name in names:
            logger.info("%s", name)
        return names

    def select(self, mailbox: str) -> bool:
        """Select *mailbox* read-only; return False (and warn) on failure."""
        try:
            typ, data = self._conn().select(_quote_mailbox(mailbox), readonly=True)
        except imaplib.IMAP4.error as exc:
            logger.warning("Could not select mailbox %s: %s", mailbox, exc)
            return False
        if typ != "OK":
            logger.warning("Could not select mailbox %s: %r", mailbox, data)
            return False
        return True

    def search(self, query: str) -> list[int]:
        """Run a SEARCH in the selected mailbox; return sorted sequence numbers."""
        conn = self._conn()
        try:
            if query.isascii():
                typ, data = conn.search(None, query)
            else:
                typ, data = conn.search("UTF-8", query.encode("utf-8"))
        except imaplib.IMAP4.error as exc:
            raise ImapError(f"SEARCH failed: {exc}") from exc
        if typ != "OK":
            raise ImapError(f"SEARCH failed: {data!r}")

        ids: list[int] = []
        for chunk in data:
            if chunk:
                ids.extend(int(n) for n in chunk.split())
        return sorted(ids)

    def fetch_headers(self, ids: list[int]) -> list[bytes]:
        """Fetch the envelope header block of each message in *ids*."""
        if not ids:
            return []
        sequence_set = ",".join(str(i) for i in ids)
        try:
            typ, data = self._conn().fetch(sequence_set, FETCH_PARTS)
        except imaplib.IMAP4.error as exc:
            raise ImapError(f"FETCH failed: {exc}") from exc
        if typ != "OK":
            raise ImapError(f"FETCH failed: {data!r}")
        return [item[1] for item in data if isinstance(item, tuple) and len(item) > 1]

    def fetch_envelopes(self, query: str, mailboxes: tuple[str, ...] | list[str]) -> list[Envelope]:
        """Search each mailbox with *query* and parse the matching envelopes.

        Mailboxes that cannot be selected and messages whose headers cannot
        be parsed are logged and skipped.  Search and fetch failures raise
        :class:`ImapError`.
        """
        envelopes: list[Envelope] = []
        for mailbox in mailboxes:
            if not self.select(mailbox):
                continue
            ids = self.search(query)
            logger.debug("%d messages in %s match %s", len(ids), mailbox, query)
            for raw in self.fetch_headers(ids):
                try:
                    envelopes.append(parse_envelope(raw))
                except MailParseError as exc:
                    logger.warning("Skipping message in %s: %s", mailbox, exc)
        return envelopes


def fetch_wrs(client: MailClient, spec: QuerySpec) -> list[Envelope]:
    """Fetch the envelopes of the sent reports described by *spec*."""
    query = build_search_query(spec)
    wrs = client.fetch_envelopes(query, spec.wr_mailboxes)
    logger.info("Found %d WRs", len(wrs))
    return wrs


def fetch_replies(client: MailClient, spec: QuerySpec, subject: str | None = None) -> list[Envelope]:
    """Fetch candidate replies to the reports described by *spec*.

    Only envelopes carrying an In-Reply-To header are kept.  Passing
    *subject* narrows the search to one report's exact subject.
    """
    query = build_search_query(reply_spec(spec, subject=subject))
    replies = [
        env for env in client.fetch_envelopes(query, spec.re_mailboxes)
        if env.in_reply_to is not None
    ]
    logger.info("Found %d potential Replies", len(replies))
    return replies
