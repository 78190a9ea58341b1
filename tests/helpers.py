"""Shared test helpers for wr-stats tests.

Regular functions (not fixtures) that can be imported by any test module.
"""

from __future__ import annotations

import imaplib
from datetime import datetime

from wr_mail import Address, Envelope
from wr_reports import ReportRecord, ReportSet

# 2023-01-06 is a Friday
FRIDAY = "2023-01-06T10:00:00+01:00"


def make_envelope(
    date: str = FRIDAY,
    subject: str = "Weekly Report",
    cc: list[Address] | None = None,
    in_reply_to: str | None = None,
    message_id: str | None = None,
) -> Envelope:
    """Build an Envelope from an ISO-8601 date string with offset."""
    return Envelope(
        date=datetime.fromisoformat(date),
        subject=subject,
        cc=tuple(cc) if cc is not None else None,
        in_reply_to=in_reply_to,
        message_id=message_id,
    )


def make_address(user: str | None, host: str | None = "example.com", name: str | None = None) -> Address:
    return Address(
        name=name,
        user=user,
        email=f"{user}@{host}" if user and host else None,
    )


def make_report_set(pairs: list[tuple[Envelope, Envelope | None]]) -> ReportSet:
    """Build a ReportSet directly from (sent, reply) pairs."""
    return ReportSet(ReportRecord(sent=s, reply=r) for s, r in pairs)


def make_headers(
    date: str | None = "Fri, 06 Jan 2023 10:00:00 +0100",
    subject: str | None = "Weekly Report",
    cc: str | None = None,
    in_reply_to: str | None = None,
    message_id: str | None = None,
) -> bytes:
    """Build a raw header block like a HEADER.FIELDS fetch returns."""
    lines = []
    if date is not None:
        lines.append(f"Date: {date}")
    if subject is not None:
        lines.append(f"Subject: {subject}")
    if cc is not None:
        lines.append(f"Cc: {cc}")
    if in_reply_to is not None:
        lines.append(f"In-Reply-To: {in_reply_to}")
    if message_id is not None:
        lines.append(f"Message-ID: {message_id}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


class FakeIMAP:
    """In-memory stand-in for an imaplib.IMAP4_SSL connection.

    *mailboxes* maps a mailbox name to the raw header blocks it holds.
    Every SEARCH matches all messages of the selected mailbox; the queries
    are recorded in ``searches`` as (mailbox, query) pairs.
    """

    def __init__(self, mailboxes: dict[str, list[bytes]] | None = None):
        self.mailboxes = mailboxes or {}
        self.selected: str | None = None
        self.searches: list[tuple[str, str]] = []
        self.logged_in_as: tuple[str, str] | None = None
        self.logged_out = False
        self.fail_fetch = False

    def login(self, user, pwd):
        self.logged_in_as = (user, pwd)
        return ("OK", [b"Logged in"])

    def list(self):
        lines = [
            f'(\\HasNoChildren) "/" "{name}"'.encode() for name in self.mailboxes
        ]
        return ("OK", lines)

    def select(self, mailbox, readonly=False):
        name = mailbox.strip('"')
        if name not in self.mailboxes:
            return ("NO", [b"Mailbox does not exist"])
        self.selected = name
        return ("OK", [str(len(self.mailboxes[name])).encode()])

    def search(self, charset, query):
        if isinstance(query, bytes):
            query = query.decode("utf-8")
        self.searches.append((self.selected, query))
        count = len(self.mailboxes[self.selected])
        return ("OK", [" ".join(str(i) for i in range(1, count + 1)).encode()])

    def fetch(self, sequence_set, parts):
        if self.fail_fetch:
            raise imaplib.IMAP4.error("FETCH command error")
        data = []
        for seq in sequence_set.split(","):
            raw = self.mailboxes[self.selected][int(seq) - 1]
            data.append((f"{seq} (BODY[HEADER.FIELDS] {{{len(raw)}}}".encode(), raw))
            data.append(b")")
        return ("OK", data)

    def logout(self):
        self.logged_out = True
        return ("BYE", [b"Logged out"])
