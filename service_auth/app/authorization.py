"""
Ownership and role checks applied before every read, mutation or deletion.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from shared.errors import AuthenticationRequired, AuthorizationDenied, ResourceNotFound
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .validation.claims import Principal, Role

OwnerLookup = Callable[[Any], Awaitable[Optional[Any]]]


class UserRecord(Protocol):
    """Durable user as seen by the guard."""

    id: Any
    subject: str
    email: str
    name: str
    role: Role


class UserDirectory(Protocol):
    """Persistence contract for users keyed by subject."""

    async def find_user_by_subject(self, subject: str) -> Optional[UserRecord]:
        ...

    async def create_user(self, subject: str, email: str, name: str, role: Role) -> UserRecord:
        ...


class AuthorizationGuard:
    """Evaluates authentication, ownership and role rules for resource services.

    A non-admin Principal may touch a resource only when its resolved user id
    equals the resource's owner id. Admins bypass ownership but not
    existence. Resources owned by someone else answer "forbidden", not
    "not found".
    """

    def __init__(
        self,
        users: UserDirectory,
        owner_lookups: Optional[Dict[str, OwnerLookup]] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.users = users
        self.metrics = metrics
        self.logger = get_logger("auth.guard")
        self._owner_lookups: Dict[str, OwnerLookup] = dict(owner_lookups or {})

    def register_resource(self, resource_type: str, lookup: OwnerLookup) -> None:
        """Register how to find the owner id of ``resource_type`` resources."""
        self._owner_lookups[resource_type] = lookup

    def require_authenticated(self, principal: Optional[Principal]) -> Principal:
        if principal is None:
            self._record("unauthenticated")
            raise AuthenticationRequired()
        return principal

    def require_admin(self, principal: Optional[Principal]) -> Principal:
        principal = self.require_authenticated(principal)
        if principal.role is not Role.ADMIN:
            self._record("deny")
            self.logger.warning("Admin role required", subject=principal.subject)
            raise AuthorizationDenied("Admin role required")
        self._record("allow")
        return principal

    async def resolve_user(self, principal: Optional[Principal]) -> UserRecord:
        """Get or lazily create the durable user behind ``principal``.

        The role is captured when the user is created; later tokens with a
        different role do not update the stored record.
        """
        principal = self.require_authenticated(principal)

        user = await self.users.find_user_by_subject(principal.subject)
        if user is not None:
            if user.role != principal.role:
                self.logger.debug(
                    "Token role differs from stored role",
                    subject=principal.subject,
                    token_role=principal.role.value,
                    stored_role=user.role.value,
                )
            return user

        self.logger.info("Creating new user", subject=principal.subject)
        return await self.users.create_user(
            subject=principal.subject,
            email=principal.email,
            name=principal.name,
            role=principal.role,
        )

    async def require_owner_or_admin(self, principal: Optional[Principal], resource_owner_id: Any) -> UserRecord:
        """Allow admins and the owner of the resource, deny everyone else."""
        user = await self.resolve_user(principal)
        if principal.role is Role.ADMIN or user.id == resource_owner_id:
            self._record("allow")
            return user

        self._record("deny")
        self.logger.warning(
            "Ownership check failed",
            subject=principal.subject,
            user_id=user.id,
            owner_id=resource_owner_id,
        )
        raise AuthorizationDenied("You don't have access to this resource")

    async def require_resource_access(
        self,
        principal: Optional[Principal],
        resource_type: str,
        resource_id: Any,
    ) -> UserRecord:
        """Look up the owner of a resource and apply ``require_owner_or_admin``."""
        self.require_authenticated(principal)

        lookup = self._owner_lookups.get(resource_type)
        if lookup is None:
            raise KeyError(f"No owner lookup registered for resource type '{resource_type}'")

        owner_id = await lookup(resource_id)
        if owner_id is None:
            raise ResourceNotFound(
                f"{resource_type.capitalize()} not found with ID: {resource_id}",
                details={"resource_type": resource_type, "resource_id": resource_id},
            )

        return await self.require_owner_or_admin(principal, owner_id)

    def _record(self, decision: str) -> None:
        if self.metrics is not None:
            self.metrics.record_authorization(decision)
