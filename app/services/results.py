"""Vote tallying, ranking, and tie notices for board elections.

Everything here is a pure function of candidate rows and ballot rows, so
live and final results are always recomputed from the raw ballots and a
tally can never drift from the ledger.

Ranked positions map onto board seats: position 0 is the Leader and
positions 1 and 2 are the two Admin seats. Runs of equal vote counts that
touch those seats produce a notice so admins know the raw rank order is
doing the tie-breaking.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from app.services.member_service import ADMIN, LEADER

SEAT_COUNT = 3
WARN = "warn"
INFO = "info"


@dataclass(frozen=True)
class TieNotice:
    """Human-readable notice about a tie touching the role-bearing seats."""

    severity: str
    message: str
    start: int
    size: int
    user_ids: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity,
            "message": self.message,
            "positions": list(range(self.start, self.start + self.size)),
            "user_ids": list(self.user_ids),
        }


@dataclass
class RankedCandidate:
    user_id: str
    full_name: str
    biography: str | None
    votes: int
    percentage: int
    rank: int
    seat: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "full_name": self.full_name,
            "biography": self.biography,
            "votes": self.votes,
            "percentage": self.percentage,
            "rank": self.rank,
            "seat": self.seat,
        }


@dataclass
class ElectionResults:
    total_votes: int
    candidates: list[RankedCandidate] = field(default_factory=list)
    notices: list[TieNotice] = field(default_factory=list)


def tally(candidate_ids: Iterable[str], ballots: Iterable[dict[str, Any]]) -> dict[str, int]:
    """Count how many ballots selected each candidate."""
    counts = {str(candidate_id): 0 for candidate_id in candidate_ids}
    selections = Counter(
        str(choice) for ballot in ballots for choice in ballot.get("candidate_ids") or []
    )
    for candidate_id in counts:
        counts[candidate_id] = selections.get(candidate_id, 0)
    return counts


def percentage(votes: int, total: int) -> int:
    """Return ``votes / total`` as a whole percentage, rounding halves up."""
    if total <= 0:
        return 0
    return math.floor(votes * 100 / total + 0.5)


def seat_for_rank(rank: int) -> str | None:
    """Return the role a ranked position earns on finalization."""
    if rank == 0:
        return LEADER
    if rank < SEAT_COUNT:
        return ADMIN
    return None


def rank_candidates(
    candidates: list[dict[str, Any]],
    counts: dict[str, int],
    total_votes: int,
) -> list[RankedCandidate]:
    """Order candidates by votes descending, then by user id."""
    ordered = sorted(
        candidates,
        key=lambda c: (-counts.get(str(c["user_id"]), 0), str(c["user_id"])),
    )
    ranked: list[RankedCandidate] = []
    for rank, candidate in enumerate(ordered):
        votes = counts.get(str(candidate["user_id"]), 0)
        ranked.append(
            RankedCandidate(
                user_id=str(candidate["user_id"]),
                full_name=str(candidate.get("full_name") or ""),
                biography=candidate.get("biography"),
                votes=votes,
                percentage=percentage(votes, total_votes),
                rank=rank,
                seat=seat_for_rank(rank),
            )
        )
    return ranked


def tie_groups(votes: list[int]) -> list[tuple[int, int]]:
    """Split a descending vote list into maximal ``[start, end)`` runs of equal values."""
    groups: list[tuple[int, int]] = []
    start = 0
    for idx in range(1, len(votes) + 1):
        if idx == len(votes) or votes[idx] != votes[start]:
            groups.append((start, idx))
            start = idx
    return groups


def join_names(names: list[str]) -> str:
    """Join names as ``A and B`` or ``A, B and C``."""
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} and {names[-1]}"


def tie_notice(start: int, size: int, names: list[str]) -> tuple[str, str] | None:
    """Return ``(severity, message)`` for a tie group, or None when no seat is at stake."""
    if size < 2 or start >= SEAT_COUNT:
        return None

    last = start + size - 1
    joined = join_names(names)
    if start == 0:
        if size == 2:
            return WARN, f"Leader position tied between {joined}"
        if last <= SEAT_COUNT:
            return WARN, f"Top {size} positions all tied between {joined}"
        return WARN, f"Leader and multiple positions tied between {joined}"
    if start == 1:
        if last < SEAT_COUNT:
            return INFO, f"2nd place (Admin) tied between {joined}"
        return WARN, f"2nd and 3rd place (Admin) tied between {joined}"
    return WARN, f"Last Admin spot (3rd place) tied between {joined}"


def tie_notices(ranked: list[RankedCandidate]) -> list[TieNotice]:
    """Build notices for every tie group that overlaps the Leader or Admin seats."""
    notices: list[TieNotice] = []
    for start, end in tie_groups([candidate.votes for candidate in ranked]):
        group = ranked[start:end]
        result = tie_notice(start, end - start, [c.full_name or c.user_id for c in group])
        if result is None:
            continue
        severity, message = result
        notices.append(
            TieNotice(
                severity=severity,
                message=message,
                start=start,
                size=end - start,
                user_ids=tuple(c.user_id for c in group),
            )
        )
    return notices


def compute_results(
    candidates: list[dict[str, Any]],
    ballots: list[dict[str, Any]],
) -> ElectionResults:
    """Project raw ballots into ranked, tie-aware results.

    ``total_votes`` is the number of ballots, not the number of
    selections, since each ballot names three candidates. Before the first
    ballot every candidate sits at zero, which is not reported as a tie.
    """
    total_votes = len(ballots)
    counts = tally((c["user_id"] for c in candidates), ballots)
    ranked = rank_candidates(candidates, counts, total_votes)
    notices = tie_notices(ranked) if total_votes else []
    return ElectionResults(total_votes=total_votes, candidates=ranked, notices=notices)
