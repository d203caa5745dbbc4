"""Vote lifecycle, ballot and tally endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from assemblyvote.api.deps import get_voting_service
from assemblyvote.api.routes.auth import AuthenticatedUser, get_current_user
from assemblyvote.schemas import (
    BallotCreate,
    CastResult,
    VoteCreate,
    VoteRead,
    VoteStatusUpdate,
    VoteTallyRead,
    VoteUpdate,
)
from assemblyvote.services.voting import VotingService

router = APIRouter()


@router.post("/votes", response_model=VoteRead, status_code=status.HTTP_201_CREATED)
def create_vote(
    payload: VoteCreate,
    service: VotingService = Depends(get_voting_service),
    user: AuthenticatedUser = Depends(get_current_user),
) -> VoteRead:
    vote = service.create_vote(
        user.identity_id,
        payload.assembly_id,
        payload.title,
        payload.options,
        payload.description,
    )
    return VoteRead.model_validate(vote)


@router.get("/assemblies/{assembly_id}/votes", response_model=list[VoteRead])
def list_votes(
    assembly_id: str,
    service: VotingService = Depends(get_voting_service),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[VoteRead]:
    return [VoteRead.model_validate(vote) for vote in service.list_votes(user.identity_id, assembly_id)]


@router.post("/votes/{vote_id}/ballots", response_model=CastResult, status_code=status.HTTP_201_CREATED)
def cast_vote(
    vote_id: str,
    payload: BallotCreate,
    service: VotingService = Depends(get_voting_service),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CastResult:
    outcome = service.cast_vote(user.identity_id, vote_id, payload.option_id, payload.target)
    return CastResult.model_validate(outcome)


@router.get("/votes/{vote_id}/tally", response_model=VoteTallyRead)
def vote_tally(
    vote_id: str,
    service: VotingService = Depends(get_voting_service),
    _user: AuthenticatedUser = Depends(get_current_user),
) -> VoteTallyRead:
    return VoteTallyRead.model_validate(service.get_vote_tally(vote_id))


@router.patch("/votes/{vote_id}/status", response_model=VoteRead)
def update_vote_status(
    vote_id: str,
    payload: VoteStatusUpdate,
    service: VotingService = Depends(get_voting_service),
    user: AuthenticatedUser = Depends(get_current_user),
) -> VoteRead:
    return VoteRead.model_validate(service.update_vote_status(user.identity_id, vote_id, payload.status))


@router.patch("/votes/{vote_id}", response_model=VoteRead)
def update_vote(
    vote_id: str,
    payload: VoteUpdate,
    service: VotingService = Depends(get_voting_service),
    user: AuthenticatedUser = Depends(get_current_user),
) -> VoteRead:
    vote = service.update_vote_details(
        user.identity_id,
        vote_id,
        title=payload.title,
        description=payload.description,
        options=payload.options,
    )
    return VoteRead.model_validate(vote)


@router.delete("/votes/{vote_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_vote(
    vote_id: str,
    service: VotingService = Depends(get_voting_service),
    user: AuthenticatedUser = Depends(get_current_user),
) -> Response:
    service.delete_vote(user.identity_id, vote_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
