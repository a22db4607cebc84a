"""Election endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user, get_current_user_id, get_db_client, require_admin
from app.schemas.election import (
    CandidateListEnvelope,
    ElectionCreate,
    ElectionEnvelope,
    ElectionListEnvelope,
    ElectionUpdate,
    PromotionsEnvelope,
    VoteCreate,
    VoteEnvelope,
)
from app.services.election_service import ElectionService
from app.services.finalization_service import FinalizationService
from app.services.member_service import MemberService
from app.services.vote_service import VoteService
from supabase import Client

router = APIRouter()


@router.get("", response_model=ElectionListEnvelope)
def list_elections(
    _: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return all elections with derived status and ballot counts."""
    service = ElectionService(client)
    return {"elections": service.list_elections()}


@router.get("/current", response_model=ElectionEnvelope)
def get_current_election(
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return the active election, else the next upcoming one."""
    service = ElectionService(client)
    return {"election": service.current(viewer_id=get_current_user_id(user))}


@router.get("/candidates", response_model=CandidateListEnvelope)
def list_eligible_candidates(
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return members who may be nominated."""
    return {"candidates": MemberService(client).list_eligible_candidates()}


@router.get("/{election_id}", response_model=ElectionEnvelope)
def get_election(
    election_id: str,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Return one election with ranked candidates and tie notices."""
    service = ElectionService(client)
    return {"election": service.get(election_id, viewer_id=get_current_user_id(user))}


@router.post("", response_model=ElectionEnvelope)
def create_election(
    payload: ElectionCreate,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Create a new election."""
    service = ElectionService(client)
    election = service.create(
        actor_id=get_current_user_id(user),
        title=payload.title,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        candidate_ids=payload.candidate_ids,
    )
    return {"election": election}


@router.put("/{election_id}", response_model=ElectionEnvelope)
def update_election(
    election_id: str,
    payload: ElectionUpdate,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Edit dates or the candidate slate."""
    service = ElectionService(client)
    election = service.update(
        actor_id=get_current_user_id(user),
        election_id=election_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        candidate_ids=payload.candidate_ids,
    )
    return {"election": election}


@router.delete("/{election_id}")
def delete_election(
    election_id: str,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Delete an unfinalized election."""
    service = ElectionService(client)
    service.delete(actor_id=get_current_user_id(user), election_id=election_id)
    return {"success": True}


@router.post("/{election_id}/vote", response_model=VoteEnvelope)
def cast_vote(
    election_id: str,
    payload: VoteCreate,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Cast the current member's ballot."""
    service = VoteService(client)
    vote = service.cast_vote(
        election_id=election_id,
        voter_id=get_current_user_id(user),
        candidate_ids=payload.candidate_ids,
    )
    return {"vote": vote}


@router.post("/{election_id}/finalize", response_model=PromotionsEnvelope)
def finalize_election(
    election_id: str,
    user: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Freeze results and promote the Leader and Admins."""
    service = FinalizationService(client)
    promotions = service.finalize(election_id, actor_id=get_current_user_id(user))
    return {"promotions": promotions}
