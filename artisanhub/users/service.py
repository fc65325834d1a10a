"""Artisan profile operations."""

from __future__ import annotations

import logging
import uuid

from artisanhub.api.errors import ApiError, ApiErrorCode
from artisanhub.auth.models import Principal, Role
from artisanhub.auth.repository import UserRepository
from artisanhub.auth.service import utc_now_iso
from artisanhub.users.models import (
    ArtisanProfile,
    ArtisanProfileRequest,
    ArtisanProfileUpdateRequest,
)
from artisanhub.users.repository import ArtisanProfileRepository, DuplicateProfileError

LOGGER = logging.getLogger(__name__)


class ArtisanService:
    """Create, read and update artisan profiles."""

    def __init__(self, profiles: ArtisanProfileRepository, users: UserRepository) -> None:
        """Initialize service dependencies."""
        self._profiles = profiles
        self._users = users

    def owner_of(self, profile_id: str) -> str | None:
        profile = self._profiles.get(profile_id)
        return profile.user_id if profile else None

    def create(self, principal: Principal, req: ArtisanProfileRequest) -> ArtisanProfile:
        """Create the profile for ``req.user_id`` (admins) or the caller."""
        owner_id = req.user_id or principal.user_id
        owner = self._users.get_by_id(owner_id)
        if owner is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "User not found")
        if owner.role is not Role.ARTISAN:
            raise ApiError(
                ApiErrorCode.VALIDATION_FAILED,
                "Validation failed",
                data={"errors": ["Artisan profiles can only belong to artisan accounts"]},
            )

        now = utc_now_iso()
        profile = ArtisanProfile(
            profile_id=uuid.uuid4().hex,
            user_id=owner_id,
            skills=[skill.strip() for skill in req.skills if skill.strip()],
            experience_years=req.experience_years,
            location=req.location.strip(),
            bio=req.bio.strip(),
            created_at=now,
            updated_at=now,
        )
        try:
            self._profiles.insert(profile)
        except DuplicateProfileError as exc:
            raise ApiError(
                ApiErrorCode.CONFLICT,
                "Artisan profile already exists for this user",
            ) from exc
        LOGGER.info("artisan_profile_created", extra={"user_id": owner_id})
        return profile

    def get(self, profile_id: str) -> ArtisanProfile:
        profile = self._profiles.get(profile_id)
        if profile is None:
            raise ApiError(ApiErrorCode.NOT_FOUND, "Artisan profile not found")
        return profile

    def update(self, profile_id: str, req: ArtisanProfileUpdateRequest) -> ArtisanProfile:
        current = self.get(profile_id)
        changes = req.model_dump(exclude_none=True)
        updated = current.model_copy(update={**changes, "updated_at": utc_now_iso()})
        if not self._profiles.replace(updated):
            raise ApiError(ApiErrorCode.NOT_FOUND, "Artisan profile not found")
        return updated
