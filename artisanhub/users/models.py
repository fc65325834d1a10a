"""Artisan profile models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from artisanhub.auth.models import CamelModel


class ArtisanProfile(BaseModel):
    """Seller profile owned by exactly one artisan user."""

    profile_id: str
    user_id: str
    skills: list[str] = Field(default_factory=list)
    experience_years: int = 0
    location: str = ""
    bio: str = ""
    created_at: str = ""
    updated_at: str = ""

    def public(self) -> dict[str, Any]:
        return {
            "profileId": self.profile_id,
            "userId": self.user_id,
            "skills": list(self.skills),
            "experienceYears": self.experience_years,
            "location": self.location,
            "bio": self.bio,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class ArtisanProfileRequest(CamelModel):
    """Create payload; ``userId`` defaults to the caller."""

    user_id: str | None = None
    skills: list[str] = Field(min_length=1, max_length=20)
    experience_years: int = Field(default=0, ge=0, le=80)
    location: str = Field(min_length=1, max_length=120)
    bio: str = Field(default="", max_length=1000)


class ArtisanProfileUpdateRequest(CamelModel):
    """Partial update payload; ownership cannot be transferred."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    skills: list[str] | None = Field(default=None, min_length=1, max_length=20)
    experience_years: int | None = Field(default=None, ge=0, le=80)
    location: str | None = Field(default=None, min_length=1, max_length=120)
    bio: str | None = Field(default=None, max_length=1000)
