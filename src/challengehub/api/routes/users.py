"""Per-user dashboard endpoints."""

from fastapi import APIRouter

from challengehub.api.dependencies import CurrentUser, DbSession
from challengehub.api.schemas import ChallengeResponse, ErrorResponse
from challengehub.services.challenge_service import ChallengeService

router = APIRouter(prefix="/user", tags=["user"])


@router.get(
    "/challenges",
    response_model=list[ChallengeResponse],
    responses={401: {"model": ErrorResponse}},
)
async def list_my_challenges(
    db: DbSession,
    user: CurrentUser,
) -> list[ChallengeResponse]:
    """Challenges the caller created, drafts included, newest first."""
    challenges = await ChallengeService(db).list_creator_challenges(user)
    return [ChallengeResponse.model_validate(c) for c in challenges]
