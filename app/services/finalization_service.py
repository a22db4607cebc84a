"""Exactly-once election finalization and role promotion."""

from __future__ import annotations

import logging
from typing import Any

from app.services.common import SupabaseService, full_name
from app.services.member_service import MemberService, granted_roles
from app.services.results import compute_results
from app.services.vote_service import VoteService
from app.utils.errors import AlreadyFinalizedError, InvalidInputError, NotActiveError, NotFoundError
from app.utils.time import COMPLETED, derive_status, parse_timestamp
from supabase import Client

logger = logging.getLogger(__name__)


class FinalizationService:
    """Freeze completed elections and promote the top three candidates."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.members = MemberService(client)
        self.votes = VoteService(client)

    def pending(self) -> list[dict[str, Any]]:
        """Return unfinalized elections whose voting window has closed."""
        rows = self.db.select_many("elections", filters={"is_finalized": False})
        return [
            row
            for row in rows
            if derive_status(row["start_date"], row["end_date"]) == COMPLETED
        ]

    def finalize_if_due(self, election: dict[str, Any]) -> bool:
        """Finalize a completed election that received ballots.

        Returns True only when this call did the finalization. Losing the
        race to another finalizer, or to an end-date extension, is logged.
        """
        election_id = str(election["id"])
        if election.get("is_finalized"):
            return False
        if derive_status(election["start_date"], election["end_date"]) != COMPLETED:
            return False
        if self.votes.ballot_count(election_id) == 0:
            return False
        try:
            self.finalize(election_id)
        except (AlreadyFinalizedError, NotActiveError) as exc:
            logger.info("Skipped auto-finalize of election %s: %s", election_id, exc.message)
            return False
        return True

    def finalize(self, election_id: str, actor_id: str | None = None) -> dict[str, Any]:
        """Finalize a completed election once and return the promotions issued.

        The ``finalize_election`` function flips ``is_finalized`` under a row
        lock and grants the roles in the same transaction, so of two
        concurrent callers only one promotes, and a failed grant leaves the
        election unfinalized. Tied seats are reported in ``tie_notices`` but
        promotion always follows the ranked order.
        """
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        if election.get("is_finalized"):
            raise AlreadyFinalizedError()
        if derive_status(election["start_date"], election["end_date"]) != COMPLETED:
            raise NotActiveError("Elections can only be finalized after the end date")

        candidate_rows = self.db.select_many(
            "election_candidates",
            filters={"election_id": election_id},
            columns="user_id",
        )
        candidate_ids = [str(row["user_id"]) for row in candidate_rows]
        users = self.db.get_users_map(candidate_ids)
        candidates = [
            {"user_id": user_id, "full_name": full_name(users.get(user_id))}
            for user_id in candidate_ids
        ]
        results = compute_results(candidates, self.votes.ballots(election_id))
        seated = [candidate for candidate in results.candidates if candidate.seat is not None]

        response_rows = self.db.execute(
            self.db.client.rpc(
                "finalize_election",
                {
                    "p_election_id": election_id,
                    "p_actor_id": actor_id,
                    "p_promotions": [
                        {"user_id": candidate.user_id, "roles": granted_roles(candidate.seat)}
                        for candidate in seated
                    ],
                },
            ),
            default=[],
        )
        if not response_rows:
            raise InvalidInputError("Election finalization failed")
        payload = response_rows[0]
        if not payload.get("success"):
            self._raise_for_reason(str(payload.get("reason") or ""))
        self.members.forget_roles([candidate.user_id for candidate in seated])

        promotions: list[dict[str, Any]] = []
        for candidate in seated:
            promotions.append(
                {
                    "user_id": candidate.user_id,
                    "full_name": candidate.full_name,
                    "rank": candidate.rank,
                    "votes": candidate.votes,
                    "role": candidate.seat,
                }
            )
            logger.info(
                "Member %s promoted to %s after election %s (rank #%s, votes: %s)",
                candidate.user_id,
                candidate.seat,
                election_id,
                candidate.rank + 1,
                candidate.votes,
            )

        logger.info(
            "Election %s finalized by %s with %s ballots",
            election_id,
            actor_id or "system",
            results.total_votes,
        )
        return {
            "election_id": str(election_id),
            "finalized_at": parse_timestamp(payload["finalized_at"]),
            "total_votes": results.total_votes,
            "promotions": promotions,
            "tie_notices": [notice.to_dict() for notice in results.notices],
        }

    @staticmethod
    def _raise_for_reason(reason: str) -> None:
        if reason == "election_not_found":
            raise NotFoundError("Election")
        if reason == "already_finalized":
            raise AlreadyFinalizedError()
        if reason == "election_not_completed":
            raise NotActiveError("Elections can only be finalized after the end date")
        raise InvalidInputError("Election finalization failed")
