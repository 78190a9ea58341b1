"""Pairing of sent weekly reports (WRs) with their replies.

Each sent envelope becomes one :class:`ReportRecord`.  A reply is attached
when its In-Reply-To header equals the sent message's Message-ID.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Iterator

from wr_mail import Envelope

logger = logging.getLogger(__name__)

REPLY_PREFIXES = ("Re:", "RE:", "Aw:", "AW:")


@dataclass(frozen=True)
class ReportRecord:
    """A sent report and the reply it received, if any."""

    sent: Envelope
    reply: Envelope | None = None

    @property
    def replied(self) -> bool:
        return self.reply is not None


class ReportSet:
    """Ordered collection of report records, in the order reports were sent."""

    def __init__(self, records: Iterable[ReportRecord] = ()):
        self._records: list[ReportRecord] = list(records)

    def __iter__(self) -> Iterator[ReportRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> ReportRecord:
        return self._records[index]

    def __repr__(self) -> str:
        return f"ReportSet({self._records!r})"

    @property
    def records(self) -> list[ReportRecord]:
        return list(self._records)

    def num_wrs(self) -> int:
        return len(self._records)

    def num_replied_wrs(self) -> int:
        return sum(1 for r in self._records if r.replied)

    def attach_reply(self, index: int, reply: Envelope) -> None:
        """Replace the record at *index* with one carrying *reply*."""
        self._records[index] = replace(self._records[index], reply=reply)


def is_reply_subject(subject: str) -> bool:
    """True if *subject* contains a reply marker such as ``Re:`` or ``AW:``."""
    return any(prefix in subject for prefix in REPLY_PREFIXES)


def filter_sent(sent: Iterable[Envelope]) -> list[Envelope]:
    """Drop replies that the sent-side search picked up by accident.

    A message is dropped only when it is threaded (has In-Reply-To) *and*
    its subject carries a reply marker.
    """
    return [
        env for env in sent
        if not (env.in_reply_to is not None and is_reply_subject(env.subject))
    ]


def find_reply(sent: Envelope, candidates: Iterable[Envelope]) -> Envelope | None:
    """Return the first candidate replying to *sent*, or None.

    Matching is exact string equality of the candidate's In-Reply-To and the
    sent message's Message-ID; either side missing never matches.
    """
    if sent.message_id is None:
        return None
    for candidate in candidates:
        if candidate.in_reply_to is not None and candidate.in_reply_to == sent.message_id:
            return candidate
    return None


def merge_wrs(sent: Iterable[Envelope], candidate_replies: Iterable[Envelope]) -> ReportSet:
    """Pair sent report envelopes with candidate replies.

    Args:
        sent: Envelopes found by the sent-side search, in mailbox order.
        candidate_replies: Envelopes found by the reply-side search.

    Returns:
        A :class:`ReportSet` with one record per sent envelope that survives
        :func:`filter_sent`, in input order.  Candidates are not consumed,
        so one reply may be attached to more than one record.
    """
    candidates = list(candidate_replies)
    reports = ReportSet(
        ReportRecord(sent=env, reply=find_reply(env, candidates))
        for env in filter_sent(sent)
    )
    logger.info(
        "Found %d Replies to %d WRs",
        reports.num_replied_wrs(),
        reports.num_wrs(),
    )
    return reports


def fill_missing_replies(
    reports: ReportSet,
    lookup: Callable[[Envelope], Iterable[Envelope]],
) -> int:
    """Second pass: look up replies for records that have none yet.

    Args:
        reports: The report set to update in place.
        lookup: Called with each unreplied record's sent envelope; returns
            candidate replies for it (typically a search pinned to its
            exact subject).

    Returns:
        The number of replies attached by this pass.
    """
    attached = 0
    for index, record in enumerate(reports.records):
        if record.replied or record.sent.message_id is None:
            continue
        reply = find_reply(record.sent, lookup(record.sent))
        if reply is not None:
            reports.attach_reply(index, reply)
            attached += 1
    logger.info("Second pass attached %d more Replies", attached)
    return attached
