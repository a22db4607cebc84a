"""Election creation, editing, and read models."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from app.config import settings
from app.services.common import SupabaseService, full_name
from app.services.finalization_service import FinalizationService
from app.services.member_service import ADMIN, MemberService
from app.services.results import compute_results
from app.services.vote_service import VoteService
from app.utils.errors import (
    FinalizedElectionError,
    InvalidInputError,
    LockedElectionError,
    NotFoundError,
    ValidationError,
)
from app.utils.time import ACTIVE, UPCOMING, derive_status, ensure_utc, now_utc, parse_timestamp
from supabase import Client

logger = logging.getLogger(__name__)


class ElectionService:
    """Manage the board election lifecycle."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.members = MemberService(client)
        self.votes = VoteService(client)
        self.finalization = FinalizationService(client)

    def _get_row(self, election_id: str) -> dict[str, Any]:
        return self.db.select_one("elections", {"id": election_id}, not_found_label="Election")

    def _candidate_ids(self, election_id: str) -> list[str]:
        rows = self.db.select_many(
            "election_candidates",
            filters={"election_id": election_id},
            columns="user_id",
        )
        return [str(row["user_id"]) for row in rows]

    def _validate_window(self, start_date: datetime, end_date: datetime) -> None:
        if end_date <= start_date:
            raise ValidationError("End date must be after start date")

    def _validate_slate(self, candidate_ids: list[str]) -> list[str]:
        slate = list(dict.fromkeys(str(candidate_id) for candidate_id in candidate_ids))
        if len(slate) < settings.min_candidates:
            raise ValidationError(
                f"At least {settings.min_candidates} different candidates are required"
            )
        eligible = self.members.eligible_ids(slate)
        ineligible = [candidate_id for candidate_id in slate if candidate_id not in eligible]
        if ineligible:
            raise ValidationError(f"Members not eligible to stand: {', '.join(ineligible)}")
        return slate

    def _hydrate(self, election: dict[str, Any], viewer_id: str | None = None) -> dict[str, Any]:
        election_id = str(election["id"])
        candidate_ids = self._candidate_ids(election_id)
        users = self.db.get_users_map(candidate_ids)
        candidates = [
            {
                "user_id": user_id,
                "full_name": full_name(users.get(user_id)),
                "biography": (users.get(user_id) or {}).get("biography"),
            }
            for user_id in candidate_ids
        ]
        ballots = self.votes.ballots(election_id)
        results = compute_results(candidates, ballots)

        payload = dict(election)
        payload["status"] = derive_status(election["start_date"], election["end_date"])
        payload["candidates"] = [candidate.to_dict() for candidate in results.candidates]
        payload["total_votes"] = results.total_votes
        payload["tie_notices"] = [notice.to_dict() for notice in results.notices]
        payload["has_voted"] = bool(
            viewer_id and any(str(b["voter_id"]) == str(viewer_id) for b in ballots)
        )
        return payload

    def get(self, election_id: str, viewer_id: str | None = None) -> dict[str, Any]:
        """Return one election with live or final results.

        With ``finalize_on_read`` enabled, a completed election that has
        ballots is finalized before it is returned.
        """
        election = self._get_row(election_id)
        if settings.finalize_on_read and self.finalization.finalize_if_due(election):
            election = self._get_row(election_id)
        return self._hydrate(election, viewer_id=viewer_id)

    def list_elections(self) -> list[dict[str, Any]]:
        """Return election summaries, most recent start first."""
        elections = self.db.select_many("elections", order_by="start_date", descending=True)
        if not elections:
            return []

        ids = [str(election["id"]) for election in elections]
        candidate_counts: dict[str, int] = dict.fromkeys(ids, 0)
        for row in self.db.select_many(
            "election_candidates", filters={"election_id": ids}, columns="election_id"
        ):
            candidate_counts[str(row["election_id"])] += 1
        ballot_counts: dict[str, int] = dict.fromkeys(ids, 0)
        for row in self.db.select_many(
            "election_ballots", filters={"election_id": ids}, columns="election_id"
        ):
            ballot_counts[str(row["election_id"])] += 1

        return [
            {
                "id": str(election["id"]),
                "title": election["title"],
                "start_date": election["start_date"],
                "end_date": election["end_date"],
                "status": derive_status(election["start_date"], election["end_date"]),
                "total_votes": ballot_counts[str(election["id"])],
                "candidate_count": candidate_counts[str(election["id"])],
                "is_finalized": bool(election.get("is_finalized")),
            }
            for election in elections
        ]

    def current(self, viewer_id: str | None = None) -> dict[str, Any] | None:
        """Return the active election, else the next upcoming one."""
        summaries = self.list_elections()
        active = [s for s in summaries if s["status"] == ACTIVE]
        if active:
            return self.get(active[0]["id"], viewer_id=viewer_id)
        upcoming = sorted(
            (s for s in summaries if s["status"] == UPCOMING),
            key=lambda s: parse_timestamp(s["start_date"]),
        )
        if upcoming:
            return self.get(upcoming[0]["id"], viewer_id=viewer_id)
        return None

    def create(
        self,
        actor_id: str,
        title: str,
        start_date: datetime,
        end_date: datetime,
        candidate_ids: list[str],
        description: str | None = None,
    ) -> dict[str, Any]:
        """Create an election with its candidate slate (Admin only)."""
        self.members.ensure_roles(actor_id, {ADMIN}, "Only admins can create elections")

        clean_title = title.strip()
        if not clean_title:
            raise ValidationError("Title is required")
        start_date, end_date = ensure_utc(start_date), ensure_utc(end_date)
        self._validate_window(start_date, end_date)
        if end_date <= now_utc():
            raise ValidationError("End date must be in the future")
        slate = self._validate_slate(candidate_ids)

        # Election row and slate are written in one transaction.
        rows = self.db.execute(
            self.db.client.rpc(
                "create_election",
                {
                    "p_title": clean_title,
                    "p_description": description.strip() if description else None,
                    "p_start_date": start_date.isoformat(),
                    "p_end_date": end_date.isoformat(),
                    "p_created_by": actor_id,
                    "p_candidate_ids": slate,
                },
            ),
            default=[],
        )
        if not rows:
            raise InvalidInputError("Election creation failed")
        election = rows[0]

        logger.info("Election %s created by %s", election["id"], actor_id)
        return self._hydrate(election, viewer_id=actor_id)

    def update(
        self,
        actor_id: str,
        election_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        candidate_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """Edit an election; only the end date may move once ballots exist.

        The store re-checks finalization and the ballot count under a row
        lock, so a ballot or a finalize that lands after these checks still
        rejects the edit.
        """
        self.members.ensure_roles(actor_id, {ADMIN}, "Only admins can edit elections")

        election = self._get_row(election_id)
        if election.get("is_finalized"):
            raise FinalizedElectionError()

        current_start = parse_timestamp(election["start_date"])
        current_end = parse_timestamp(election["end_date"])
        new_start = ensure_utc(start_date) if start_date is not None else current_start
        new_end = ensure_utc(end_date) if end_date is not None else current_end

        start_changed = new_start != current_start
        slate_changed = False
        if candidate_ids is not None:
            requested = {str(candidate_id) for candidate_id in candidate_ids}
            slate_changed = requested != set(self._candidate_ids(election_id))

        locking_change = start_changed or slate_changed
        if locking_change and self.votes.ballot_count(election_id) > 0:
            raise LockedElectionError()

        self._validate_window(new_start, new_end)
        slate = self._validate_slate(candidate_ids or []) if slate_changed else None

        rows = self.db.execute(
            self.db.client.rpc(
                "update_election",
                {
                    "p_election_id": election_id,
                    "p_start_date": new_start.isoformat(),
                    "p_end_date": new_end.isoformat(),
                    "p_candidate_ids": slate,
                    "p_require_no_ballots": locking_change,
                },
            ),
            default=[],
        )
        if not rows:
            raise InvalidInputError("Election update failed")
        payload = rows[0]
        if not payload.get("success"):
            self._raise_for_reason(str(payload.get("reason") or ""))

        logger.info("Election %s updated by %s", election_id, actor_id)
        return self._hydrate(self._get_row(election_id), viewer_id=actor_id)

    def delete(self, actor_id: str, election_id: str) -> None:
        """Delete an unfinalized election with its candidates and ballots."""
        self.members.ensure_roles(actor_id, {ADMIN}, "Only admins can delete elections")

        election = self._get_row(election_id)
        if election.get("is_finalized"):
            raise FinalizedElectionError("Finalized elections cannot be deleted")

        # Candidates and ballots follow through ``on delete cascade``.
        deleted = self.db.delete("elections", {"id": election_id, "is_finalized": False})
        if not deleted:
            raise FinalizedElectionError("Finalized elections cannot be deleted")
        logger.info("Election %s deleted by %s", election_id, actor_id)

    @staticmethod
    def _raise_for_reason(reason: str) -> None:
        if reason == "election_not_found":
            raise NotFoundError("Election")
        if reason == "election_finalized":
            raise FinalizedElectionError()
        if reason == "election_locked":
            raise LockedElectionError()
        raise InvalidInputError("Election update failed")
