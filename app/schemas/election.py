"""Election schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ElectionCreate(BaseModel):
    """Request body for creating an election."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    start_date: datetime
    end_date: datetime
    candidate_ids: list[str] = Field(default_factory=list)


class ElectionUpdate(BaseModel):
    """Request body for editing an election; omitted fields stay unchanged."""

    start_date: datetime | None = None
    end_date: datetime | None = None
    candidate_ids: list[str] | None = None


class VoteCreate(BaseModel):
    """Request body for casting a ballot."""

    candidate_ids: list[str]


class VoteAck(BaseModel):
    """Acknowledgement of a recorded ballot."""

    election_id: str
    voter_id: str
    cast_at: datetime


class CandidateResult(BaseModel):
    """A candidate with its live or final tally."""

    user_id: str
    full_name: str
    biography: str | None = None
    votes: int
    percentage: int
    rank: int
    seat: str | None = None


class TieNoticeResponse(BaseModel):
    """Tie between candidates competing for a Leader or Admin seat."""

    severity: str
    message: str
    positions: list[int]
    user_ids: list[str]


class ElectionResponse(BaseModel):
    """Election with derived status and ranked results."""

    id: str
    title: str
    description: str | None = None
    start_date: datetime
    end_date: datetime
    status: str
    is_finalized: bool = False
    finalized_at: datetime | None = None
    finalized_by: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    total_votes: int = 0
    has_voted: bool = False
    candidates: list[CandidateResult] = Field(default_factory=list)
    tie_notices: list[TieNoticeResponse] = Field(default_factory=list)


class ElectionSummary(BaseModel):
    """Row in the election list."""

    id: str
    title: str
    start_date: datetime
    end_date: datetime
    status: str
    total_votes: int
    candidate_count: int
    is_finalized: bool


class EligibleMember(BaseModel):
    """Member who may stand as a candidate."""

    user_id: str
    full_name: str
    biography: str | None = None


class Promotion(BaseModel):
    """Role granted to a ranked candidate on finalization."""

    user_id: str
    full_name: str
    rank: int
    votes: int
    role: str


class RolePromotions(BaseModel):
    """Outcome of finalizing an election."""

    election_id: str
    finalized_at: datetime
    total_votes: int
    promotions: list[Promotion]
    tie_notices: list[TieNoticeResponse] = Field(default_factory=list)


class ElectionEnvelope(BaseModel):
    election: ElectionResponse | None


class ElectionListEnvelope(BaseModel):
    elections: list[ElectionSummary]


class CandidateListEnvelope(BaseModel):
    candidates: list[EligibleMember]


class VoteEnvelope(BaseModel):
    vote: VoteAck


class PromotionsEnvelope(BaseModel):
    promotions: RolePromotions
