"""
api/routes/v1/models.py -- Traffic model REST endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  POST /api/v1/models                              -- create model
  POST /api/v1/models/ownership-transfer/accept    -- redeem OWNERSHIP_TRANSFER link
  GET  /api/v1/models/{model_id}                   -- model detail
  POST /api/v1/models/{model_id}/ownership-transfer -- mail transfer link to target

Visibility: a private model is only visible to those who may manage it.
Private models answer 404 to everyone else rather than 403, so ids of private
models cannot be enumerated.
"""

from fastapi import APIRouter, Depends, Request

from api.errors import raise_for_failure
from api.limiter import limiter
from api.models import (
    MessageResponse,
    OwnershipTransferRequest,
    TokenRequest,
    TrafficModelCreate,
    TrafficModelResponse,
)
from auth.dependencies import get_current_user, try_get_current_user
from auth.models import User
from catalog.store import CatalogStore
from core.results import NotFound
from workflows.ownership import OwnershipWorkflows

router = APIRouter()


@limiter.limit("30/minute")
@router.post("/models", response_model=TrafficModelResponse, status_code=201)
def create_model(
    request: Request,
    body: TrafficModelCreate,
    current_user: User = Depends(get_current_user),
) -> TrafficModelResponse:
    ownership: OwnershipWorkflows = request.app.state.ownership
    result = ownership.create_model(
        current_user,
        body.name,
        description=body.description,
        is_visibility_public=body.is_visibility_public,
        owner_team_id=body.owner_team_id,
    )
    raise_for_failure(result)
    return TrafficModelResponse.from_model(result.value)


@limiter.limit("10/minute")
@router.post("/models/ownership-transfer/accept", response_model=TrafficModelResponse)
def accept_transfer(
    request: Request,
    body: TokenRequest,
    current_user: User = Depends(get_current_user),
) -> TrafficModelResponse:
    ownership: OwnershipWorkflows = request.app.state.ownership
    result = ownership.accept_transfer(body.token)
    raise_for_failure(result)
    return TrafficModelResponse.from_model(result.value)


@router.get("/models/{model_id}", response_model=TrafficModelResponse)
def get_model(request: Request, model_id: int) -> TrafficModelResponse:
    catalog: CatalogStore = request.app.state.catalog
    ownership: OwnershipWorkflows = request.app.state.ownership
    model = catalog.get_traffic_model(model_id)
    if model is not None and not model.is_visibility_public:
        viewer = try_get_current_user(request)
        if viewer is None or not ownership.can_manage(viewer, model):
            model = None
    if model is None:
        raise_for_failure(NotFound("Traffic model", str(model_id)))
    return TrafficModelResponse.from_model(model)


@limiter.limit("10/minute")
@router.post("/models/{model_id}/ownership-transfer", response_model=MessageResponse, status_code=202)
def request_transfer(
    request: Request,
    model_id: int,
    body: OwnershipTransferRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    ownership: OwnershipWorkflows = request.app.state.ownership
    result = ownership.request_transfer(
        model_id,
        current_user,
        target_email=body.target_email,
        target_team_id=body.target_team_id,
    )
    raise_for_failure(result)
    return MessageResponse(message="Ownership transfer requested. The new owner must accept it by email.")
