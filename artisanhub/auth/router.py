"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from artisanhub.api.contracts import ERROR_RESPONSES, ApiResponse, ok
from artisanhub.auth.models import (
    AddressRequest,
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    SendOtpRequest,
    VerifyOtpRequest,
)
from artisanhub.auth.service import AuthService
from artisanhub.security.guard import SecurityGuard
from artisanhub.security.pipeline import RequestContext
from artisanhub.security.policy import Action, OperationPolicy, ResourceType
from artisanhub.verification.service import IdentityVerificationService

REGISTER = OperationPolicy(action=Action.CREATE, resource_type=ResourceType.USER, public=True)
OPEN_SESSION = OperationPolicy(
    action=Action.CREATE, resource_type=ResourceType.SESSION, public=True
)
CLOSE_SESSION = OperationPolicy(action=Action.DELETE, resource_type=ResourceType.SESSION)
READ_SELF = OperationPolicy(action=Action.READ, resource_type=ResourceType.USER)
UPDATE_SELF = OperationPolicy(action=Action.UPDATE, resource_type=ResourceType.USER)
PHONE_OTP = OperationPolicy(
    action=Action.VERIFY, resource_type=ResourceType.VERIFICATION, public=True
)
LIST_ADDRESSES = OperationPolicy(action=Action.READ, resource_type=ResourceType.ADDRESS)
CREATE_ADDRESS = OperationPolicy(action=Action.CREATE, resource_type=ResourceType.ADDRESS)
UPDATE_ADDRESS = OperationPolicy(action=Action.UPDATE, resource_type=ResourceType.ADDRESS)
DELETE_ADDRESS = OperationPolicy(action=Action.DELETE, resource_type=ResourceType.ADDRESS)


def create_auth_router(
    service: AuthService,
    verification: IdentityVerificationService,
    guard: SecurityGuard,
) -> APIRouter:
    """Build authentication router: sessions, phone OTP and address book."""
    router = APIRouter(tags=["auth"], responses=ERROR_RESPONSES)

    @router.post("/api/auth/register", status_code=201, response_model=ApiResponse)
    def register(
        req: RegisterRequest,
        ctx: RequestContext = Depends(guard.require(REGISTER)),
    ) -> ApiResponse:
        """Self-register a customer, artisan or distributor."""
        data = service.register(req, device_info=ctx.device_info)
        return ok("User registered successfully", data)

    @router.post("/api/auth/login", response_model=ApiResponse)
    def login(
        req: LoginRequest,
        ctx: RequestContext = Depends(guard.require(OPEN_SESSION)),
    ) -> ApiResponse:
        """Authenticate by phone and password and return a token pair."""
        data = service.login(req, client_ip=ctx.client_ip, device_info=ctx.device_info)
        return ok("Login successful", data)

    @router.post("/api/auth/refresh-token", response_model=ApiResponse)
    def refresh_token(
        req: RefreshRequest,
        ctx: RequestContext = Depends(guard.require(OPEN_SESSION)),
    ) -> ApiResponse:
        """Rotate refresh token and issue new session tokens."""
        return ok("Token refreshed", service.refresh(req.refresh_token, ctx.device_info))

    @router.post("/api/auth/logout", response_model=ApiResponse)
    def logout(ctx: RequestContext = Depends(guard.require(CLOSE_SESSION))) -> ApiResponse:
        """Revoke the current session."""
        revoked = service.logout(ctx.require_principal())
        return ok("Logged out successfully", {"revoked": revoked})

    @router.post("/api/auth/logout-all", response_model=ApiResponse)
    def logout_all(ctx: RequestContext = Depends(guard.require(CLOSE_SESSION))) -> ApiResponse:
        revoked = service.logout_all(ctx.require_principal())
        return ok("Logged out from all devices", {"revokedSessions": revoked})

    @router.get("/api/auth/profile", response_model=ApiResponse)
    def profile(ctx: RequestContext = Depends(guard.require(READ_SELF))) -> ApiResponse:
        return ok("Profile retrieved", service.profile(ctx.require_principal()))

    @router.post("/api/auth/change-password", response_model=ApiResponse)
    def change_password(
        req: ChangePasswordRequest,
        ctx: RequestContext = Depends(guard.require(UPDATE_SELF)),
    ) -> ApiResponse:
        """Change password; every session is revoked and must log in again."""
        revoked = service.change_password(ctx.require_principal(), req)
        return ok("Password changed. Please log in again.", {"revokedSessions": revoked})

    @router.post("/api/auth/send-otp", response_model=ApiResponse)
    def send_otp(
        req: SendOtpRequest,
        ctx: RequestContext = Depends(guard.require(PHONE_OTP)),
    ) -> ApiResponse:
        data = verification.send_phone_otp(req.phone)
        if data["isPhoneVerified"]:
            return ok("Phone number already verified", data)
        return ok("OTP sent successfully", data)

    @router.post("/api/auth/verify-otp", response_model=ApiResponse)
    def verify_otp(
        req: VerifyOtpRequest,
        ctx: RequestContext = Depends(guard.require(PHONE_OTP)),
    ) -> ApiResponse:
        return ok("Phone number verified", verification.verify_phone_otp(req.phone, req.otp))

    @router.get("/api/auth/addresses", response_model=ApiResponse)
    def list_addresses(
        ctx: RequestContext = Depends(guard.require(LIST_ADDRESSES)),
    ) -> ApiResponse:
        return ok("Addresses retrieved", service.list_addresses(ctx.require_principal().user_id))

    @router.get("/api/auth/addresses/default", response_model=ApiResponse)
    def default_address(
        ctx: RequestContext = Depends(guard.require(LIST_ADDRESSES)),
    ) -> ApiResponse:
        return ok(
            "Default address retrieved",
            service.default_address(ctx.require_principal().user_id),
        )

    @router.post("/api/auth/addresses", status_code=201, response_model=ApiResponse)
    def add_address(
        req: AddressRequest,
        ctx: RequestContext = Depends(guard.require(CREATE_ADDRESS)),
    ) -> ApiResponse:
        """Add an address; the first one becomes the default."""
        return ok("Address added", service.add_address(ctx.require_principal().user_id, req))

    @router.put("/api/auth/addresses/{addressId}", response_model=ApiResponse)
    def update_address(
        addressId: str,
        req: AddressRequest,
        ctx: RequestContext = Depends(guard.require(UPDATE_ADDRESS)),
    ) -> ApiResponse:
        user_id = ctx.require_principal().user_id
        return ok("Address updated", service.update_address(user_id, addressId, req))

    @router.delete("/api/auth/addresses/{addressId}", response_model=ApiResponse)
    def delete_address(
        addressId: str,
        ctx: RequestContext = Depends(guard.require(DELETE_ADDRESS)),
    ) -> ApiResponse:
        service.delete_address(ctx.require_principal().user_id, addressId)
        return ok("Address deleted")

    @router.patch("/api/auth/addresses/{addressId}/set-default", response_model=ApiResponse)
    def set_default_address(
        addressId: str,
        ctx: RequestContext = Depends(guard.require(UPDATE_ADDRESS)),
    ) -> ApiResponse:
        user_id = ctx.require_principal().user_id
        return ok("Default address updated", service.set_default_address(user_id, addressId))

    return router
