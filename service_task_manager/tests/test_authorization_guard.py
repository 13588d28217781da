"""
Tests for AuthorizationGuard against the in-memory repositories.
"""

import asyncio

import pytest
import pytest_asyncio

from service_auth.app.authorization import AuthorizationGuard
from service_auth.app.validation.claims import Principal, Role
from service_task_manager.app.models import Project, Task
from service_task_manager.app.persistence import InMemoryStore
from shared.errors import AuthenticationRequired, AuthorizationDenied, ResourceNotFound
from shared.metrics import MetricsCollector

ALICE = Principal(subject="alice-sub", email="alice@example.com", name="Alice", role=Role.USER)
BOB = Principal(subject="bob-sub", email="bob@example.com", name="Bob", role=Role.USER)
ROOT = Principal(subject="root-sub", email="root@example.com", name="Root", role=Role.ADMIN)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def metrics():
    return MetricsCollector("guard-test")


@pytest.fixture
def guard(store, metrics):
    guard = AuthorizationGuard(store.users, metrics=metrics)
    guard.register_resource("project", store.projects.find_resource_owner)
    guard.register_resource("task", store.tasks.find_resource_owner)
    return guard


@pytest_asyncio.fixture
async def alice_project(store, guard):
    """Project owned by Alice, who is user 1."""
    alice = await guard.resolve_user(ALICE)
    return await store.projects.save(Project(name="Alice's project", owner_id=alice.id))


class TestAuthentication:
    """Checks that need only a Principal."""

    def test_require_authenticated_rejects_anonymous(self, guard):
        with pytest.raises(AuthenticationRequired):
            guard.require_authenticated(None)

    def test_require_authenticated_returns_principal(self, guard):
        assert guard.require_authenticated(ALICE) is ALICE

    def test_require_admin(self, guard):
        assert guard.require_admin(ROOT) is ROOT

        with pytest.raises(AuthorizationDenied):
            guard.require_admin(ALICE)

        with pytest.raises(AuthenticationRequired):
            guard.require_admin(None)


class TestResolveUser:
    """Lazy provisioning of durable users."""

    @pytest.mark.asyncio
    async def test_creates_user_on_first_sight(self, guard):
        user = await guard.resolve_user(ALICE)

        assert user.id == 1
        assert user.subject == ALICE.subject
        assert user.email == ALICE.email
        assert user.role is Role.USER

    @pytest.mark.asyncio
    async def test_returns_same_user_afterwards(self, guard, store):
        first = await guard.resolve_user(ALICE)
        second = await guard.resolve_user(ALICE)

        assert first.id == second.id
        assert len(await store.users.find_all()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_first_requests_create_one_user(self, guard, store):
        users = await asyncio.gather(*(guard.resolve_user(BOB) for _ in range(10)))

        assert {user.id for user in users} == {1}
        assert len(await store.users.find_all()) == 1

    @pytest.mark.asyncio
    async def test_stored_role_not_reconciled(self, guard):
        """The role captured at creation stays; checks use the token role."""
        await guard.resolve_user(ALICE)
        promoted = Principal(subject=ALICE.subject, email=ALICE.email, name=ALICE.name, role=Role.ADMIN)

        user = await guard.resolve_user(promoted)

        assert user.role is Role.USER
        assert guard.require_admin(promoted) is promoted

    @pytest.mark.asyncio
    async def test_anonymous_rejected(self, guard, store):
        with pytest.raises(AuthenticationRequired):
            await guard.resolve_user(None)

        assert await store.users.find_all() == []


class TestOwnership:
    """Owner-or-admin decisions on registered resources."""

    @pytest.mark.asyncio
    async def test_owner_allowed(self, guard, alice_project):
        user = await guard.require_resource_access(ALICE, "project", alice_project.id)

        assert user.id == alice_project.owner_id

    @pytest.mark.asyncio
    async def test_other_user_denied(self, guard, alice_project):
        """Bob (user 2) cannot touch Alice's (user 1) project."""
        with pytest.raises(AuthorizationDenied) as exc_info:
            await guard.require_resource_access(BOB, "project", alice_project.id)

        assert exc_info.value.message == "You don't have access to this resource"

    @pytest.mark.asyncio
    async def test_admin_bypasses_ownership(self, guard, alice_project):
        user = await guard.require_resource_access(ROOT, "project", alice_project.id)

        assert user.subject == ROOT.subject

    @pytest.mark.asyncio
    async def test_missing_resource_is_not_found(self, guard):
        with pytest.raises(ResourceNotFound) as exc_info:
            await guard.require_resource_access(ROOT, "project", 999)

        assert exc_info.value.message == "Project not found with ID: 999"

    @pytest.mark.asyncio
    async def test_authentication_checked_before_existence(self, guard):
        """Anonymous callers learn nothing about which ids exist."""
        with pytest.raises(AuthenticationRequired):
            await guard.require_resource_access(None, "project", 999)

    @pytest.mark.asyncio
    async def test_task_owner_is_project_owner(self, guard, store, alice_project):
        task = await store.tasks.save(Task(title="Write tests", project_id=alice_project.id))

        await guard.require_resource_access(ALICE, "task", task.id)
        with pytest.raises(AuthorizationDenied):
            await guard.require_resource_access(BOB, "task", task.id)

    @pytest.mark.asyncio
    async def test_require_owner_or_admin_with_owner_id(self, guard):
        alice = await guard.resolve_user(ALICE)

        assert (await guard.require_owner_or_admin(ALICE, alice.id)).id == alice.id
        with pytest.raises(AuthorizationDenied):
            await guard.require_owner_or_admin(BOB, alice.id)

    @pytest.mark.asyncio
    async def test_unregistered_resource_type(self, guard):
        with pytest.raises(KeyError):
            await guard.require_resource_access(ALICE, "invoice", 1)

    @pytest.mark.asyncio
    async def test_decisions_counted(self, guard, metrics, alice_project):
        await guard.require_resource_access(ALICE, "project", alice_project.id)
        with pytest.raises(AuthorizationDenied):
            await guard.require_resource_access(BOB, "project", alice_project.id)
        with pytest.raises(AuthenticationRequired):
            guard.require_authenticated(None)

        assert metrics.sample("authorization_decisions_total", decision="allow") == 1
        assert metrics.sample("authorization_decisions_total", decision="deny") == 1
        assert metrics.sample("authorization_decisions_total", decision="unauthenticated") == 1
