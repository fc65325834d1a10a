"""User and artisan profile API routers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from artisanhub.api.contracts import ERROR_RESPONSES, ApiResponse, ok
from artisanhub.auth.models import AddressRequest, Role, UserUpdateRequest
from artisanhub.auth.service import AuthService
from artisanhub.security.guard import SecurityGuard
from artisanhub.security.pipeline import RequestContext
from artisanhub.security.policy import Action, OperationPolicy, ResourceType
from artisanhub.users.models import ArtisanProfileRequest, ArtisanProfileUpdateRequest
from artisanhub.users.service import ArtisanService

_ARTISANS = frozenset({Role.ARTISAN})

SEARCH_USERS = OperationPolicy(action=Action.LIST, resource_type=ResourceType.USER)
READ_USER = OperationPolicy(
    action=Action.READ, resource_type=ResourceType.USER, owner_param="userId"
)
UPDATE_USER = OperationPolicy(
    action=Action.UPDATE, resource_type=ResourceType.USER, owner_param="userId"
)
DELETE_USER = OperationPolicy(
    action=Action.DELETE,
    resource_type=ResourceType.USER,
    allowed_roles=frozenset({Role.ADMIN}),
    owner_param="userId",
)
CREATE_ARTISAN = OperationPolicy(
    action=Action.CREATE, resource_type=ResourceType.ARTISAN_PROFILE, allowed_roles=_ARTISANS
)
READ_ARTISAN = OperationPolicy(
    action=Action.READ, resource_type=ResourceType.ARTISAN_PROFILE, public=True
)
UPDATE_ARTISAN = OperationPolicy(
    action=Action.UPDATE,
    resource_type=ResourceType.ARTISAN_PROFILE,
    allowed_roles=_ARTISANS,
    owner_param="profileId",
    require_identity=True,
)


def create_users_router(service: AuthService, guard: SecurityGuard) -> APIRouter:
    """Build user lookup and self-service update routes."""
    router = APIRouter(tags=["users"], responses=ERROR_RESPONSES)

    @router.get("/api/users/search", response_model=ApiResponse)
    def search_users(
        q: str = Query(default="", max_length=100),
        limit: int = Query(default=20, ge=1, le=100),
        ctx: RequestContext = Depends(guard.require(SEARCH_USERS)),
    ) -> ApiResponse:
        """Search users by name or phone; only public summaries are returned."""
        items = service.search_users(q, limit) if q.strip() else []
        return ok("Users retrieved", {"items": items, "total": len(items)})

    @router.get("/api/users/{userId}", response_model=ApiResponse)
    def get_user(
        userId: str,
        ctx: RequestContext = Depends(guard.require(READ_USER)),
    ) -> ApiResponse:
        return ok("User retrieved", service.get_user(userId).profile())

    @router.put("/api/users/{userId}", response_model=ApiResponse)
    def update_user(
        userId: str,
        req: UserUpdateRequest,
        ctx: RequestContext = Depends(guard.require(UPDATE_USER)),
    ) -> ApiResponse:
        return ok("User updated", service.update_name(userId, req.name).profile())

    @router.delete("/api/users/{userId}", response_model=ApiResponse)
    def delete_user(
        userId: str,
        ctx: RequestContext = Depends(guard.require(DELETE_USER)),
    ) -> ApiResponse:
        service.delete_user(userId)
        return ok("User deleted")

    @router.patch("/api/users/{userId}/address", response_model=ApiResponse)
    def update_user_address(
        userId: str,
        req: AddressRequest,
        ctx: RequestContext = Depends(guard.require(UPDATE_USER)),
    ) -> ApiResponse:
        """Overwrite the user's default address."""
        return ok("Address updated", service.upsert_default_address(userId, req))

    return router


def create_artisans_router(service: ArtisanService, guard: SecurityGuard) -> APIRouter:
    """Build artisan profile routes."""
    router = APIRouter(tags=["artisans"], responses=ERROR_RESPONSES)

    @router.post("/api/artisans", status_code=201, response_model=ApiResponse)
    def create_artisan(
        req: ArtisanProfileRequest,
        ctx: RequestContext = Depends(guard.require(CREATE_ARTISAN)),
    ) -> ApiResponse:
        profile = service.create(ctx.require_principal(), req)
        return ok("Artisan profile created", profile.public())

    @router.get("/api/artisans/{profileId}", response_model=ApiResponse)
    def get_artisan(
        profileId: str,
        ctx: RequestContext = Depends(guard.require(READ_ARTISAN)),
    ) -> ApiResponse:
        return ok("Artisan profile retrieved", service.get(profileId).public())

    @router.put("/api/artisans/{profileId}", response_model=ApiResponse)
    def update_artisan(
        profileId: str,
        req: ArtisanProfileUpdateRequest,
        ctx: RequestContext = Depends(guard.require(UPDATE_ARTISAN)),
    ) -> ApiResponse:
        """Update an artisan profile; non-admin callers must be identity verified."""
        return ok("Artisan profile updated", service.update(profileId, req).public())

    return router
