"""Closed role/action/resource enumerations and the static permission table."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from artisanhub.auth.models import Role


class Action(StrEnum):
    """Operations a caller can perform on a resource type."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"
    VERIFY = "verify"


class ResourceType(StrEnum):
    """Resource kinds guarded by the pipeline."""

    SESSION = "session"
    USER = "user"
    ADDRESS = "address"
    ARTISAN_PROFILE = "artisanProfile"
    DISTRIBUTOR_PROFILE = "distributorProfile"
    PRODUCT = "product"
    ORDER = "order"
    VERIFICATION = "verification"


_ALL = frozenset(Role)
_ADMIN = frozenset({Role.ADMIN})

# Missing entries deny.
PERMISSIONS: dict[tuple[Action, ResourceType], frozenset[Role]] = {
    (Action.CREATE, ResourceType.SESSION): _ALL,
    (Action.READ, ResourceType.SESSION): _ALL,
    (Action.DELETE, ResourceType.SESSION): _ALL,
    (Action.READ, ResourceType.USER): _ALL,
    (Action.UPDATE, ResourceType.USER): _ALL,
    (Action.LIST, ResourceType.USER): _ALL,
    (Action.DELETE, ResourceType.USER): _ADMIN,
    (Action.CREATE, ResourceType.ADDRESS): _ALL,
    (Action.READ, ResourceType.ADDRESS): _ALL,
    (Action.UPDATE, ResourceType.ADDRESS): _ALL,
    (Action.DELETE, ResourceType.ADDRESS): _ALL,
    (Action.CREATE, ResourceType.ARTISAN_PROFILE): frozenset({Role.ARTISAN, Role.ADMIN}),
    (Action.READ, ResourceType.ARTISAN_PROFILE): _ALL,
    (Action.UPDATE, ResourceType.ARTISAN_PROFILE): frozenset({Role.ARTISAN, Role.ADMIN}),
    (Action.DELETE, ResourceType.ARTISAN_PROFILE): frozenset({Role.ARTISAN, Role.ADMIN}),
    (Action.CREATE, ResourceType.DISTRIBUTOR_PROFILE): frozenset({Role.DISTRIBUTOR, Role.ADMIN}),
    (Action.READ, ResourceType.DISTRIBUTOR_PROFILE): _ALL,
    (Action.UPDATE, ResourceType.DISTRIBUTOR_PROFILE): frozenset({Role.DISTRIBUTOR, Role.ADMIN}),
    (Action.CREATE, ResourceType.PRODUCT): frozenset({Role.ARTISAN, Role.ADMIN}),
    (Action.READ, ResourceType.PRODUCT): _ALL,
    (Action.UPDATE, ResourceType.PRODUCT): frozenset({Role.ARTISAN, Role.ADMIN}),
    (Action.DELETE, ResourceType.PRODUCT): frozenset({Role.ARTISAN, Role.ADMIN}),
    (Action.CREATE, ResourceType.ORDER): frozenset({Role.CUSTOMER, Role.DISTRIBUTOR, Role.ADMIN}),
    (Action.READ, ResourceType.ORDER): _ALL,
    (Action.CREATE, ResourceType.VERIFICATION): _ALL,
    (Action.READ, ResourceType.VERIFICATION): _ALL,
    (Action.VERIFY, ResourceType.VERIFICATION): _ALL,
    (Action.LIST, ResourceType.VERIFICATION): _ADMIN,
    (Action.UPDATE, ResourceType.VERIFICATION): _ADMIN,
}


def is_permitted(role: Role, action: Action, resource_type: ResourceType) -> bool:
    """Return whether ``role`` may perform ``action`` on ``resource_type``."""
    return role in PERMISSIONS.get((action, resource_type), frozenset())


@dataclass(frozen=True)
class OperationPolicy:
    """Per-route security requirements evaluated by the pipeline.

    ``allowed_roles`` of ``None`` admits every authenticated role. Admins pass
    the role and identity gates unless ``exclude_admin`` is set. ``owner_param`` names the
    path parameter holding the addressed resource id.
    """

    action: Action
    resource_type: ResourceType
    allowed_roles: frozenset[Role] | None = None
    exclude_admin: bool = False
    owner_param: str | None = None
    require_identity: bool = False
    public: bool = False

    def admits(self, role: Role) -> bool:
        if role is Role.ADMIN and not self.exclude_admin:
            return True
        return self.allowed_roles is None or role in self.allowed_roles
