"""
api/routes/v1/teams.py -- Team REST endpoints.

Routes:
  POST /api/v1/teams                       -- create team; caller becomes owner
  POST /api/v1/teams/{team_id}/invitations -- mail TEAM_INVITE link (owner only)
  POST /api/v1/teams/invitations/accept    -- redeem TEAM_INVITE link

All routes require authentication. Accepting does not check that the caller
is the invitee: the link itself is the credential, and the membership goes to
the account registered under the invited email.
"""

from fastapi import APIRouter, Depends, Request

from api.errors import raise_for_failure
from api.limiter import limiter
from api.models import InvitationCreate, MessageResponse, TeamCreate, TeamResponse, TokenRequest
from auth.dependencies import get_current_user
from auth.models import Team, User
from workflows.teams import TeamWorkflows

router = APIRouter(dependencies=[Depends(get_current_user)])


def _to_response(request: Request, team: Team) -> TeamResponse:
    return TeamResponse.from_team(team, request.app.state.user_store.list_member_ids(team.id))


@limiter.limit("30/minute")
@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(
    request: Request,
    body: TeamCreate,
    current_user: User = Depends(get_current_user),
) -> TeamResponse:
    teams: TeamWorkflows = request.app.state.teams
    result = teams.create_team(current_user, body.name)
    raise_for_failure(result)
    return _to_response(request, result.value)


@limiter.limit("10/minute")
@router.post("/teams/invitations/accept", response_model=TeamResponse)
def accept_invitation(request: Request, body: TokenRequest) -> TeamResponse:
    teams: TeamWorkflows = request.app.state.teams
    result = teams.accept_invite(body.token)
    raise_for_failure(result)
    return _to_response(request, result.value)


@limiter.limit("10/minute")
@router.post("/teams/{team_id}/invitations", response_model=MessageResponse, status_code=202)
def invite_member(
    request: Request,
    team_id: int,
    body: InvitationCreate,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    teams: TeamWorkflows = request.app.state.teams
    raise_for_failure(teams.invite(team_id, current_user, body.email))
    return MessageResponse(message="Invitation sent.")
