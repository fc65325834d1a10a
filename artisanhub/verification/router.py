"""Identity verification and admin review API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from artisanhub.api.contracts import ERROR_RESPONSES, ApiResponse, ok
from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import (
    AadhaarInitiateRequest,
    AadhaarVerifyRequest,
    ManualVerifyRequest,
    Role,
)
from artisanhub.security.guard import SecurityGuard
from artisanhub.security.pipeline import RequestContext
from artisanhub.security.policy import Action, OperationPolicy, ResourceType
from artisanhub.verification.service import IdentityVerificationService

_ADMIN_ONLY = frozenset({Role.ADMIN})

START_VERIFICATION = OperationPolicy(
    action=Action.CREATE, resource_type=ResourceType.VERIFICATION
)
COMPLETE_VERIFICATION = OperationPolicy(
    action=Action.VERIFY, resource_type=ResourceType.VERIFICATION
)
READ_VERIFICATION = OperationPolicy(action=Action.READ, resource_type=ResourceType.VERIFICATION)
LIST_PENDING = OperationPolicy(
    action=Action.LIST, resource_type=ResourceType.VERIFICATION, allowed_roles=_ADMIN_ONLY
)
MANUAL_VERIFY = OperationPolicy(
    action=Action.UPDATE,
    resource_type=ResourceType.VERIFICATION,
    allowed_roles=_ADMIN_ONLY,
    owner_param="userId",
)


def create_verification_router(
    service: IdentityVerificationService, guard: SecurityGuard
) -> APIRouter:
    """Build Aadhaar verification and admin override routes."""
    router = APIRouter(tags=["verification"], responses=ERROR_RESPONSES)

    @router.post("/api/auth/verification/aadhaar/initiate", response_model=ApiResponse)
    def initiate_aadhaar(
        req: AadhaarInitiateRequest,
        ctx: RequestContext = Depends(guard.require(START_VERIFICATION)),
    ) -> ApiResponse:
        """Send an OTP for Aadhaar verification to the registered phone."""
        data = service.initiate_aadhaar(ctx.require_principal(), req.aadhaar_number)
        return ok("OTP sent to your registered phone number", data)

    @router.post("/api/auth/verification/aadhaar/verify", response_model=ApiResponse)
    def verify_aadhaar(
        req: AadhaarVerifyRequest,
        ctx: RequestContext = Depends(guard.require(COMPLETE_VERIFICATION)),
    ) -> ApiResponse:
        data = service.verify_aadhaar(ctx.require_principal(), req.otp)
        return ok("Aadhaar verification completed successfully", data)

    @router.get("/api/auth/verification/status", response_model=ApiResponse)
    def verification_status(
        ctx: RequestContext = Depends(guard.require(READ_VERIFICATION)),
    ) -> ApiResponse:
        return ok("Verification status retrieved", service.status(ctx.require_principal()))

    @router.get("/api/auth/verification/documents", response_model=ApiResponse)
    def verification_documents(
        ctx: RequestContext = Depends(guard.require(READ_VERIFICATION)),
    ) -> ApiResponse:
        return ok("Identity is verified with Aadhaar OTP", service.documents())

    @router.post("/api/auth/verification/upload", status_code=410)
    def upload_documents(
        ctx: RequestContext = Depends(guard.require(START_VERIFICATION)),
    ) -> None:
        """Deprecated: document upload was replaced by Aadhaar OTP."""
        raise ApiError(
            ApiErrorCode.GONE,
            "Document upload is no longer supported. Use Aadhaar OTP verification.",
        )

    @router.get("/api/auth/admin/verifications/pending", response_model=ApiResponse)
    def pending_verifications(
        ctx: RequestContext = Depends(guard.require(LIST_PENDING)),
    ) -> ApiResponse:
        items = service.pending_reviews()
        return ok("Pending verifications retrieved", {"items": items, "total": len(items)})

    @router.patch(
        "/api/auth/admin/verifications/{userId}/manual-verify", response_model=ApiResponse
    )
    def manual_verify(
        userId: str,
        req: ManualVerifyRequest,
        ctx: RequestContext = Depends(guard.require(MANUAL_VERIFY)),
    ) -> ApiResponse:
        """Admin override of identity verification; requires a note."""
        data = service.manual_verify(
            ctx.require_principal(), userId, verified=req.verified, notes=req.notes
        )
        return ok("Verification status updated", data)

    return router
