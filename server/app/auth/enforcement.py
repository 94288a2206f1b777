"""Policy enforcement points: the content gate and the page guard.

Both consume an :class:`Identity` snapshot handed over by the identity
provider. A snapshot that is still loading, or carries no user, never opens a
configured gate or a guarded page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, TypeVar

from app.auth.modules import Action, Module
from app.auth.resolver import PermissionIndex, resolve
from app.auth.roles import Role, at_least, safe_landing_for

T = TypeVar("T")

DEFAULT_DENIAL_MESSAGE = (
    "You don't have permission to access this page. "
    "Please contact an administrator if you believe this is an error."
)


class IdentityState(str, Enum):
    LOADING = "loading"
    ANONYMOUS = "anonymous"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class Identity:
    state: IdentityState
    role: Role | None = None
    permissions: PermissionIndex = field(default_factory=PermissionIndex, compare=False)
    user_id: int | None = None

    @classmethod
    def loading(cls) -> "Identity":
        return cls(state=IdentityState.LOADING)

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(state=IdentityState.ANONYMOUS)

    @classmethod
    def resolved(
        cls,
        role: Role,
        permissions: PermissionIndex | None = None,
        user_id: int | None = None,
    ) -> "Identity":
        return cls(
            state=IdentityState.RESOLVED,
            role=role,
            permissions=permissions or PermissionIndex(),
            user_id=user_id,
        )

    @property
    def is_resolved(self) -> bool:
        return self.state is IdentityState.RESOLVED and self.role is not None

    def can(self, module: Module, action: Action) -> bool:
        if not self.is_resolved:
            return False
        return resolve(self.role, module, action, self.permissions)  # type: ignore[arg-type]


@dataclass(frozen=True)
class Gate:
    """Declarative check used to reveal or hide content.

    At most one of ``allowed_roles``, ``min_role`` or ``permission`` may be
    given. A gate with none of them is open to everyone, including callers
    without an identity.
    """

    allowed_roles: frozenset[Role] | None = None
    min_role: Role | None = None
    permission: tuple[Module, Action] | None = None

    def __post_init__(self) -> None:
        configured = [
            value for value in (self.allowed_roles, self.min_role, self.permission) if value is not None
        ]
        if len(configured) > 1:
            raise ValueError("Gate accepts only one of allowed_roles, min_role or permission")
        if self.allowed_roles is not None and not isinstance(self.allowed_roles, frozenset):
            object.__setattr__(self, "allowed_roles", frozenset(self.allowed_roles))

    @property
    def is_open(self) -> bool:
        return self.allowed_roles is None and self.min_role is None and self.permission is None

    def allows(self, identity: Identity) -> bool:
        if self.is_open:
            return True
        if not identity.is_resolved:
            return False
        role = identity.role
        if self.allowed_roles is not None:
            return role in self.allowed_roles
        if self.min_role is not None:
            return at_least(role, self.min_role)  # type: ignore[arg-type]
        module, action = self.permission  # type: ignore[misc]
        return identity.can(module, action)

    def render(self, identity: Identity, content: T, fallback: T | None = None) -> T | None:
        return content if self.allows(identity) else fallback


class GuardState(str, Enum):
    LOADING = "loading"
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class PageGuardDecision:
    state: GuardState
    required_roles: tuple[Role, ...] = ()
    actual_role: Role | None = None
    safe_landing: str | None = None
    message: str | None = None

    @property
    def allowed(self) -> bool:
        return self.state is GuardState.ALLOWED


class PageAccessDenied(Exception):
    """Raised at the HTTP boundary to render the access-denied view."""

    def __init__(self, decision: PageGuardDecision) -> None:
        super().__init__(decision.message or DEFAULT_DENIAL_MESSAGE)
        self.decision = decision


def guard_page(
    identity: Identity,
    allowed_roles: Iterable[Role],
    message: str = DEFAULT_DENIAL_MESSAGE,
) -> PageGuardDecision:
    required = tuple(allowed_roles)
    if identity.state is IdentityState.LOADING:
        return PageGuardDecision(state=GuardState.LOADING)
    if identity.is_resolved and identity.role in required:
        return PageGuardDecision(state=GuardState.ALLOWED, required_roles=required, actual_role=identity.role)
    return PageGuardDecision(
        state=GuardState.DENIED,
        required_roles=required,
        actual_role=identity.role,
        safe_landing=safe_landing_for(identity.role),
        message=message,
    )


_TEACHING_STAFF = (Role.TEACHER, Role.OFFICE_ADMIN, Role.SUPER_ADMIN)
_OFFICE_STAFF = (Role.OFFICE_ADMIN, Role.SUPER_ADMIN)

PAGE_ACCESS: dict[str, tuple[Role, ...]] = {
    "/dashboard": _TEACHING_STAFF,
    "/students": (Role.PARENT, Role.TEACHER, Role.OFFICE_ADMIN, Role.SUPER_ADMIN),
    "/classes": _TEACHING_STAFF,
    "/attendance": _TEACHING_STAFF,
    "/batches": _OFFICE_STAFF,
    "/academic-years": _OFFICE_STAFF,
    "/link-classes": _OFFICE_STAFF,
    "/fee-management": _OFFICE_STAFF,
    "/fee-payments": _OFFICE_STAFF,
    "/expenses": _OFFICE_STAFF,
    "/inventory": _OFFICE_STAFF,
    "/reports": _OFFICE_STAFF,
    "/settings": (Role.SUPER_ADMIN,),
    "/user-management": (Role.SUPER_ADMIN,),
    "/role-management": (Role.SUPER_ADMIN,),
}
