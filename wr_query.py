"""IMAP search expressions for sent weekly reports and their replies.

The sent-side query matches the report subject pattern(s) from the user to
the report recipient within one calendar year.  The reply-side query is the
same specification with sender and recipient swapped.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from wr_errors import QueryError

MAX_PATTERNS = 2


@dataclass(frozen=True)
class QuerySpec:
    """What to search for and where.

    Attributes:
        pattern: One or two subject patterns.
        sender: Address the reports are sent from.
        recipient: Address the reports are sent to.
        year: Calendar year to restrict the search to.
        wr_mailboxes: Mailboxes holding the sent reports.
        re_mailboxes: Mailboxes holding the replies.
    """

    pattern: tuple[str, ...]
    sender: str
    recipient: str
    year: int
    wr_mailboxes: tuple[str, ...] = field(default_factory=tuple)
    re_mailboxes: tuple[str, ...] = field(default_factory=tuple)


def _imap_date(year: int) -> str:
    """First of January of *year* in IMAP date syntax."""
    return f"01-Jan-{year}"


def _quote(value: str) -> str:
    """Render *value* as an IMAP quoted string."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_search_query(spec: QuerySpec) -> str:
    """Build an IMAP SEARCH expression from *spec*.

    Args:
        spec: The query specification.

    Returns:
        A search string such as
        ``SUBJECT "Weekly Report" FROM "a@x.com" TO "b@x.com"
        SINCE "01-Jan-2023" BEFORE "01-Jan-2024"``.

    Raises:
        QueryError: If *spec* has no pattern or more than two patterns.
    """
    if not spec.pattern:
        raise QueryError("No pattern specified")
    if len(spec.pattern) > MAX_PATTERNS:
        raise QueryError("IMAP search query supports a maximum of two patterns")

    if len(spec.pattern) == 1:
        query = f"SUBJECT {_quote(spec.pattern[0])}"
    else:
        # IMAP OR is a prefix operator taking the next two keys
        query = f"OR SUBJECT {_quote(spec.pattern[0])} SUBJECT {_quote(spec.pattern[1])}"

    return (
        f"{query} FROM {_quote(spec.sender)} TO {_quote(spec.recipient)}"
        f' SINCE "{_imap_date(spec.year)}"'
        f' BEFORE "{_imap_date(spec.year + 1)}"'
    )


def reply_spec(spec: QuerySpec, subject: str | None = None) -> QuerySpec:
    """Return the reply-side variant of *spec*.

    Replies travel in the opposite direction, so sender and recipient are
    swapped.  When *subject* is given it replaces the pattern list, pinning
    the search to the replies of one specific report.
    """
    pattern = (subject,) if subject is not None else spec.pattern
    return replace(spec, sender=spec.recipient, recipient=spec.sender, pattern=pattern)
