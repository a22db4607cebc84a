"""Append-only ballot ledger for board elections."""

from __future__ import annotations

import logging
from typing import Any

from app.config import settings
from app.services.common import SupabaseService
from app.utils.errors import (
    ConflictError,
    DuplicateVoteError,
    InvalidBallotError,
    NotActiveError,
)
from app.utils.time import ACTIVE, derive_status, now_utc
from supabase import Client

logger = logging.getLogger(__name__)


class VoteService:
    """Record ballots; there is deliberately no edit or delete path."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def ballots(self, election_id: str) -> list[dict[str, Any]]:
        """Return every ballot cast in an election, oldest first."""
        return self.db.select_many(
            "election_ballots",
            filters={"election_id": election_id},
            order_by="cast_at",
        )

    def ballot_count(self, election_id: str) -> int:
        return self.db.count("election_ballots", {"election_id": election_id})

    def has_voted(self, election_id: str, voter_id: str) -> bool:
        rows = self.db.select_many(
            "election_ballots",
            filters={"election_id": election_id, "voter_id": voter_id},
            columns="id",
            limit=1,
        )
        return bool(rows)

    def cast_vote(
        self,
        election_id: str,
        voter_id: str,
        candidate_ids: list[str],
    ) -> dict[str, Any]:
        """Cast one ballot of exactly ``settings.ballot_size`` distinct candidates."""
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        if election.get("is_finalized"):
            raise NotActiveError("Election has been finalized")
        if derive_status(election["start_date"], election["end_date"]) != ACTIVE:
            raise NotActiveError("Voting is only allowed during an active election")

        choices = [str(candidate_id) for candidate_id in candidate_ids]
        self._validate_ballot(election_id, voter_id, choices)

        if self.has_voted(election_id, voter_id):
            raise DuplicateVoteError()

        try:
            ballot = self.db.insert_one(
                "election_ballots",
                {
                    "election_id": election_id,
                    "voter_id": voter_id,
                    "candidate_ids": choices,
                    "cast_at": now_utc().isoformat(),
                },
            )
        except ConflictError as exc:
            # Lost the race against a concurrent submission from the same voter.
            raise DuplicateVoteError() from exc

        logger.info("Ballot recorded in election %s by %s", election_id, voter_id)
        return {
            "election_id": str(ballot["election_id"]),
            "voter_id": str(ballot["voter_id"]),
            "cast_at": ballot["cast_at"],
        }

    def _validate_ballot(self, election_id: str, voter_id: str, choices: list[str]) -> None:
        size = settings.ballot_size
        if len(choices) != size or len(set(choices)) != size:
            raise InvalidBallotError(f"Select exactly {size} different candidates")
        if voter_id in choices:
            raise InvalidBallotError("You cannot vote for yourself")

        rows = self.db.select_many(
            "election_candidates",
            filters={"election_id": election_id},
            columns="user_id",
        )
        slate = {str(row["user_id"]) for row in rows}
        unknown = [choice for choice in choices if choice not in slate]
        if unknown:
            raise InvalidBallotError("The selected candidate is not in this election")
