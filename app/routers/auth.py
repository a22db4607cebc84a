"""Authentication endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user, get_current_user_id, get_db_client
from app.services.member_service import MemberService
from supabase import Client

router = APIRouter()


@router.get("/session")
def auth_session(
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return the authenticated member id and the roles they hold."""
    user_id = get_current_user_id(user)
    return {"user_id": user_id, "roles": MemberService(client).get_roles(user_id)}
