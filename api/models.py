"""
API request and response models for UserGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two
through the from_* factory methods below.

Wire names follow the historical JSON contract (nom, prenom, actif,
date_creation, expiresAt, totalPages, userId). Python attribute names stay
English; the mapping lives in Field(alias=...). FastAPI serializes response
models by alias, and populate_by_name lets the factories use either name.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import LoginAudit, LoginResult, Page, Permission, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=1, max_length=255)
    # bcrypt reads at most 72 bytes; longer input is accepted and truncated by the hasher.
    password: str = Field(min_length=1, max_length=255)
    family_name: Optional[str] = Field(default=None, alias="nom", max_length=100)
    given_name: Optional[str] = Field(default=None, alias="prenom", max_length=100)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class UserUpdateRequest(BaseModel):
    """Request body for PUT /api/users/{id}.

    Every field is optional. roles, when present (even as []), replaces the
    user's full role set. An empty password is treated as "unchanged".
    nom / prenom sent as null clear the stored name; model_fields_set tells
    a provided null apart from an absent key.
    """

    model_config = ConfigDict(populate_by_name=True)

    family_name: Optional[str] = Field(default=None, alias="nom", max_length=100)
    given_name: Optional[str] = Field(default=None, alias="prenom", max_length=100)
    is_active: Optional[bool] = Field(default=None, alias="actif")
    roles: Optional[list[str]] = Field(default=None, max_length=20)
    password: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PublicUser(BaseModel):
    """Identity fields safe to return to any authenticated caller."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    email: str
    family_name: Optional[str] = Field(default=None, alias="nom")
    given_name: Optional[str] = Field(default=None, alias="prenom")


class UserSummary(BaseModel):
    """One row of the paginated user listing. Never includes the password hash."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    email: str
    family_name: Optional[str] = Field(default=None, alias="nom")
    given_name: Optional[str] = Field(default=None, alias="prenom")
    is_active: bool = Field(alias="actif")
    created_at: Optional[str] = Field(default=None, alias="date_creation")

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            email=user.email,
            family_name=user.family_name,
            given_name=user.given_name,
            is_active=user.is_active,
            created_at=user.created_at,
        )


class UserResponse(UserSummary):
    """A single user with the names of the roles it holds."""

    roles: list[str] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            family_name=user.family_name,
            given_name=user.given_name,
            is_active=user.is_active,
            created_at=user.created_at,
            roles=list(user.roles),
        )


class UserEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


class MessageUserEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LoginResponse(BaseModel):
    """Response body for POST /api/auth/login."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    message: str
    token: str
    user: PublicUser
    expires_at: str = Field(alias="expiresAt")

    @classmethod
    def from_result(cls, result: LoginResult, message: str) -> "LoginResponse":
        return cls(
            message=message,
            token=result.token,
            expires_at=result.expires_at,
            user=PublicUser(
                id=result.user.user_id,
                email=result.user.email,
                family_name=result.user.family_name,
                given_name=result.user.given_name,
            ),
        )


class LoginLogEntry(BaseModel):
    """One row of GET /api/auth/logs."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    created_at: Optional[str] = Field(default=None, alias="date_heure")
    email: str = Field(alias="email_tentative")
    source_address: Optional[str] = Field(default=None, alias="adresse_ip")
    client_agent: Optional[str] = Field(default=None, alias="user_agent")
    success: bool = Field(alias="succes")
    message: str

    @classmethod
    def from_audit(cls, entry: LoginAudit) -> "LoginLogEntry":
        return cls(
            created_at=entry.created_at,
            email=entry.email,
            source_address=entry.source_address,
            client_agent=entry.client_agent,
            success=entry.success,
            message=entry.message,
        )


class LoginLogResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    logs: list[LoginLogEntry]


class PaginationInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")


class UserListResponse(BaseModel):
    """Response body for GET /api/users."""

    model_config = ConfigDict(frozen=True)

    pagination: PaginationInfo
    users: list[UserSummary]

    @classmethod
    def from_page(cls, page: Page[User]) -> "UserListResponse":
        return cls(
            pagination=PaginationInfo(
                page=page.page,
                limit=page.limit,
                total=page.total,
                total_pages=page.total_pages,
            ),
            users=[UserSummary.from_user(u) for u in page.items],
        )


class PermissionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(alias="nom")
    resource: str = Field(alias="ressource")
    action: str
    description: Optional[str] = None

    @classmethod
    def from_permission(cls, perm: Permission) -> "PermissionResponse":
        return cls(name=perm.name, resource=perm.resource, action=perm.action, description=perm.description)


class UserPermissionsResponse(BaseModel):
    """Response body for GET /api/users/{id}/permissions."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: int = Field(alias="userId")
    permissions: list[PermissionResponse]


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
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
