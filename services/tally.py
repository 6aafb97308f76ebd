"""Vote tallying for a single poll.

Everything here is a pure function of the poll's options, its votes and the
id of the user looking at it. Nothing is cached; callers recompute whenever the
vote set changes, or apply :func:`apply_optimistic_vote` to project a vote that
was just accepted without waiting for a refetch.
"""
from collections import Counter
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence, Tuple

ONE_DECIMAL = Decimal("0.1")


@dataclass(frozen=True)
class OptionTally:
    option_id: int
    text: str
    votes: int
    percentage: float

    @property
    def percentage_label(self) -> str:
        return f"{self.percentage:.1f}"


@dataclass(frozen=True)
class PollTally:
    poll_id: int
    options: Tuple[OptionTally, ...]
    total_votes: int
    has_voted: bool = False
    voted_option_id: Optional[int] = None

    def option(self, option_id: int) -> Optional[OptionTally]:
        return next((opt for opt in self.options if opt.option_id == option_id), None)


def percentage(count: int, total: int) -> float:
    """Share of ``total`` as a percentage rounded half-up to one decimal. 0.0 when total is 0."""
    if total <= 0:
        return 0.0
    exact = Decimal(count * 100) / Decimal(total)
    return float(exact.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP))


def _option_tallies(options: Iterable[Tuple[int, str, int]], total: int) -> Tuple[OptionTally, ...]:
    return tuple(
        OptionTally(option_id=option_id, text=text, votes=count, percentage=percentage(count, total))
        for option_id, text, count in options
    )


def tally_poll(poll_id: int, options: Sequence, votes: Sequence, user_id: Optional[int] = None) -> PollTally:
    """Count ``votes`` per option of ``options``.

    ``options`` need ``id`` and ``text``; ``votes`` need ``option_id`` and
    ``user_id``. ``total_votes`` is the number of votes, and percentages are
    taken against it.
    """
    counts = Counter(vote.option_id for vote in votes)
    total = len(votes)
    own_vote = None
    if user_id is not None:
        own_vote = next((vote for vote in votes if vote.user_id == user_id), None)

    return PollTally(
        poll_id=poll_id,
        options=_option_tallies(((opt.id, opt.text, counts.get(opt.id, 0)) for opt in options), total),
        total_votes=total,
        has_voted=own_vote is not None,
        voted_option_id=own_vote.option_id if own_vote is not None else None,
    )


def apply_optimistic_vote(tally: PollTally, option_id: int) -> PollTally:
    """Project a just-accepted vote for ``option_id`` onto ``tally``."""
    if tally.option(option_id) is None:
        raise KeyError(option_id)

    total = tally.total_votes + 1
    options = _option_tallies(
        (
            (opt.option_id, opt.text, opt.votes + 1 if opt.option_id == option_id else opt.votes)
            for opt in tally.options
        ),
        total,
    )
    return replace(tally, options=options, total_votes=total, has_voted=True, voted_option_id=option_id)
