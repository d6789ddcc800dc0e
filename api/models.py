"""
API request and response models for the mobiHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Credential fields are plain strings here: format rules live in
auth/credentials.py so HTTP and non-HTTP callers get the same InvalidCredential
result. The max_length caps only bound request size.

Raw link tokens never appear in a response model. They travel by email only.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from auth.models import Team, User
from catalog.models import TrafficModel, UploadableAsset

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class TokenRequest(BaseModel):
    """Body for every endpoint that redeems an emailed link."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(max_length=256)
    email: str = Field(max_length=512)
    password: str = Field(max_length=256)


class EmailRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=512)


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=512)
    password: str = Field(max_length=256)


class PasswordResetConfirm(TokenRequest):
    password: str = Field(max_length=256)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    is_email_verified: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            is_email_verified=user.is_email_verified,
            created_at=user.created_at or "",
        )


class RegisterResponse(BaseModel):
    """Response for POST /auth/register.

    confirmation_sent is False when the account was created but the
    confirmation email could not be delivered; the client should offer
    POST /auth/confirm-email/resend.
    """

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    confirmation_sent: bool


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    name: str


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


class TeamCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(max_length=256)


class TeamResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    owner_user_id: int
    created_at: str
    member_ids: list[int] = Field(default_factory=list)

    @classmethod
    def from_team(cls, team: Team, member_ids: list[int]) -> "TeamResponse":
        return cls(
            id=team.id,
            name=team.name,
            owner_user_id=team.owner_user_id,
            created_at=team.created_at or "",
            member_ids=member_ids,
        )


class InvitationCreate(EmailRequest):
    pass


# ---------------------------------------------------------------------------
# Traffic models
# ---------------------------------------------------------------------------


class TrafficModelCreate(BaseModel):
    """Body for POST /models. Omit owner_team_id to own the model yourself."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=64)
    description: str = Field(default="", max_length=1024)
    is_visibility_public: bool = False
    owner_team_id: Optional[int] = None


class TrafficModelResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    owner_user_id: Optional[int]
    owner_team_id: Optional[int]
    is_visibility_public: bool
    created_at: str

    @classmethod
    def from_model(cls, model: TrafficModel) -> "TrafficModelResponse":
        return cls(
            id=model.id,
            name=model.name,
            description=model.description,
            owner_user_id=model.owner_user_id,
            owner_team_id=model.owner_team_id,
            is_visibility_public=model.is_visibility_public,
            created_at=model.created_at,
        )


class OwnershipTransferRequest(BaseModel):
    """Exactly one target: a registered user's email or a team id."""

    model_config = ConfigDict(str_strip_whitespace=True)

    target_email: Optional[str] = Field(default=None, max_length=512)
    target_team_id: Optional[int] = None

    @model_validator(mode="after")
    def exactly_one_target(self) -> "OwnershipTransferRequest":
        if (self.target_email is None) == (self.target_team_id is None):
            raise ValueError("Provide exactly one of target_email or target_team_id")
        return self


# ---------------------------------------------------------------------------
# Uploadable assets
# ---------------------------------------------------------------------------


class AssetCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=64)
    extension: str = Field(min_length=1, max_length=8)
    traffic_model_id: Optional[int] = None


class AssetResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    name: str
    extension: str
    traffic_model_id: Optional[int]
    state: str
    created_at: str

    @classmethod
    def from_asset(cls, asset: UploadableAsset) -> "AssetResponse":
        return cls(
            token=asset.token,
            name=asset.name,
            extension=asset.extension,
            traffic_model_id=asset.traffic_model_id,
            state=asset.state.value,
            created_at=asset.created_at,
        )
