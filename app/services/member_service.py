"""Member directory: eligibility, roles, and promotions."""

from __future__ import annotations

import logging
from typing import Any

from app.config import settings
from app.services.common import SupabaseService, _cache_get, _cache_pop, _cache_set, full_name
from app.utils.errors import ConflictError, ForbiddenError
from supabase import Client

FULL_MEMBER = "Full Member"
ADMIN = "Admin"
LEADER = "Leader"
ELIGIBLE_ROLES = frozenset({FULL_MEMBER, ADMIN})
ROLE_PRIORITY = {LEADER: 0, ADMIN: 1, FULL_MEMBER: 2}

logger = logging.getLogger(__name__)
_role_cache: dict[str, tuple[float, list[str]]] = {}


def granted_roles(role: str) -> list[str]:
    """Return the roles a promotion to ``role`` grants; Leader implies Admin."""
    return [ADMIN, LEADER] if role == LEADER else [role]


class MemberService:
    """Read member roles and apply election role promotions."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def get_roles(self, user_id: str) -> list[str]:
        """Return all roles a member holds, highest first."""
        cache_key = str(user_id)
        cached = _cache_get(_role_cache, cache_key)
        if cached is not None:
            return list(cached)

        rows = self.db.select_many("member_roles", filters={"user_id": cache_key})
        roles = sorted({str(row["role"]) for row in rows}, key=lambda r: ROLE_PRIORITY.get(r, 99))
        _cache_set(_role_cache, cache_key, roles, settings.role_cache_ttl_seconds)
        return roles

    def ensure_roles(self, user_id: str, required: set[str], reason: str) -> None:
        """Ensure user has at least one role in ``required``."""
        if not set(self.get_roles(user_id)).intersection(required):
            raise ForbiddenError(reason)

    def list_eligible_candidates(self) -> list[dict[str, Any]]:
        """Return members who may stand for election, sorted by name."""
        rows = self.db.select_many(
            "member_roles",
            filters={"role": sorted(ELIGIBLE_ROLES)},
        )
        user_ids = {str(row["user_id"]) for row in rows}
        users = self.db.get_users_map(user_ids)

        members = [
            {
                "user_id": user_id,
                "full_name": full_name(users.get(user_id)),
                "biography": (users.get(user_id) or {}).get("biography"),
            }
            for user_id in user_ids
            if user_id in users
        ]
        members.sort(key=lambda item: (item["full_name"].lower(), item["user_id"]))
        return members

    def eligible_ids(self, user_ids: list[str]) -> set[str]:
        """Return the subset of ``user_ids`` holding an eligible role."""
        if not user_ids:
            return set()
        rows = self.db.select_many(
            "member_roles",
            filters={"user_id": sorted(set(user_ids)), "role": sorted(ELIGIBLE_ROLES)},
        )
        return {str(row["user_id"]) for row in rows}

    def promote_to_role(self, user_id: str, role: str) -> list[str]:
        """Grant ``role`` (Leader implies Admin) and return the roles added."""
        wanted = granted_roles(role)
        current = set(self.get_roles(user_id))
        added: list[str] = []
        for granted in wanted:
            if granted in current:
                continue
            try:
                self.db.insert_one("member_roles", {"user_id": user_id, "role": granted})
            except ConflictError:
                # Granted concurrently; the unique (user_id, role) index holds.
                continue
            added.append(granted)

        if FULL_MEMBER in current:
            self.revoke_role(user_id, FULL_MEMBER)

        _cache_pop(_role_cache, str(user_id))
        if added:
            logger.info("Member %s granted roles %s", user_id, ", ".join(added))
        return added

    def forget_roles(self, user_ids: list[str]) -> None:
        """Drop cached roles after they were changed outside this service."""
        for user_id in user_ids:
            _cache_pop(_role_cache, str(user_id))

    def revoke_role(self, user_id: str, role: str) -> None:
        """Remove one role from a member."""
        self.db.delete("member_roles", {"user_id": user_id, "role": role})
        _cache_pop(_role_cache, str(user_id))
