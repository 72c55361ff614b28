"""Vote tally for disputes in the voting phase.

The same tally() is used right after a vote is cast (early quorum) and by
the overdue scanner once the voting deadline has passed, so the outcome
never depends on when the count was taken.
"""

import math
from typing import Iterable, NamedTuple, Optional

from chama_disputes.models import ResolutionType, VoteDecision


class TallyResult(NamedTuple):
    votes_for: int
    votes_against: int
    votes_abstain: int
    required_votes: int
    quorum_reached: bool
    outcome: str  # ResolutionType.UPHELD or ResolutionType.DISMISSED

    @property
    def total(self) -> int:
        return self.votes_for + self.votes_against + self.votes_abstain

    def to_dict(self) -> dict:
        return {
            'for': self.votes_for,
            'against': self.votes_against,
            'abstain': self.votes_abstain,
            'total': self.total,
            'required_votes': self.required_votes,
            'quorum_reached': self.quorum_reached,
            'outcome': self.outcome,
        }


def _decision_of(vote) -> str:
    return vote if isinstance(vote, str) else vote.decision


def tally(votes: Iterable, required_votes: Optional[int], dispute_type: Optional[str] = None) -> TallyResult:
    """Count votes and decide the outcome.

    Args:
        votes: DisputeVote rows or bare decision strings
        required_votes: quorum threshold; None or < 1 counts as 1
        dispute_type: accepted so per-type rules can be added; every type
            currently uses simple majority

    Abstentions count toward quorum but not toward the majority. A tie
    between for and against dismisses the dispute.
    """
    counts = {VoteDecision.FOR: 0, VoteDecision.AGAINST: 0, VoteDecision.ABSTAIN: 0}
    for vote in votes:
        decision = _decision_of(vote)
        if decision not in counts:
            raise ValueError(f'Unknown vote decision: {decision!r}')
        counts[decision] += 1

    threshold = max(required_votes or 1, 1)
    total = sum(counts.values())

    if counts[VoteDecision.FOR] > counts[VoteDecision.AGAINST]:
        outcome = ResolutionType.UPHELD
    else:
        outcome = ResolutionType.DISMISSED

    return TallyResult(
        votes_for=counts[VoteDecision.FOR],
        votes_against=counts[VoteDecision.AGAINST],
        votes_abstain=counts[VoteDecision.ABSTAIN],
        required_votes=threshold,
        quorum_reached=total >= threshold,
        outcome=outcome,
    )


def default_required_votes(eligible_voters: int) -> int:
    """Simple majority of eligible voters, never less than one."""
    return max(math.ceil(eligible_voters / 2), 1)
