"""
Resource services for users, projects and tasks.

Every operation takes the request's Principal explicitly and asks the
authorization guard before touching a resource.
"""

from typing import Optional

from service_auth.app.authorization import AuthorizationGuard
from service_auth.app.validation.claims import Principal
from shared.errors import ResourceNotFound, ValidationError
from shared.logging import get_logger
from .models import (
    PageResponse,
    Project,
    ProjectRequest,
    ProjectResponse,
    Task,
    TaskRequest,
    TaskResponse,
    TaskStatus,
    UserResponse,
)
from .persistence import InMemoryStore


class UserService:
    """Profile lookups for the caller and, for admins, any user."""

    def __init__(self, store: InMemoryStore, guard: AuthorizationGuard):
        self.store = store
        self.guard = guard
        self.logger = get_logger("task-manager.users")

    async def get_current_user_profile(self, principal: Optional[Principal]) -> UserResponse:
        user = await self.guard.resolve_user(principal)
        return UserResponse.from_entity(user)

    async def get_all_users(self, principal: Optional[Principal], page: int, size: int) -> PageResponse[UserResponse]:
        await self.guard.resolve_user(principal)
        self.guard.require_admin(principal)
        users = [UserResponse.from_entity(u) for u in await self.store.users.find_all()]
        return PageResponse.of(users, page, size)

    async def get_user_profile_by_id(self, principal: Optional[Principal], user_id: int) -> UserResponse:
        await self.guard.resolve_user(principal)
        self.guard.require_admin(principal)
        user = await self.store.users.find_by_id(user_id)
        if user is None:
            raise ResourceNotFound(f"User not found with ID: {user_id}")
        return UserResponse.from_entity(user)


class ProjectService:
    """Project CRUD scoped to the owner, with admin override."""

    def __init__(self, store: InMemoryStore, guard: AuthorizationGuard):
        self.store = store
        self.guard = guard
        self.logger = get_logger("task-manager.projects")

    async def _to_response(self, project: Project) -> ProjectResponse:
        owner = await self.store.users.find_by_id(project.owner_id)
        task_count = await self.store.tasks.count_by_project(project.id)
        return ProjectResponse.from_entity(project, owner=owner, task_count=task_count)

    async def _page(self, projects, page: int, size: int) -> PageResponse[ProjectResponse]:
        window = PageResponse.of(projects, page, size)
        window.content = [await self._to_response(p) for p in window.content]
        return window

    async def create_project(self, principal: Optional[Principal], request: ProjectRequest) -> ProjectResponse:
        user = await self.guard.resolve_user(principal)
        project = await self.store.projects.save(
            Project(name=request.name, description=request.description, owner_id=user.id)
        )
        self.logger.info("Project created", project_id=project.id, owner_id=user.id)
        return await self._to_response(project)

    async def get_current_user_projects(
        self, principal: Optional[Principal], page: int, size: int
    ) -> PageResponse[ProjectResponse]:
        user = await self.guard.resolve_user(principal)
        return await self._page(await self.store.projects.find_by_owner(user.id), page, size)

    async def get_user_projects_by_id(
        self, principal: Optional[Principal], user_id: int, page: int, size: int
    ) -> PageResponse[ProjectResponse]:
        await self.guard.resolve_user(principal)
        self.guard.require_admin(principal)
        if await self.store.users.find_by_id(user_id) is None:
            raise ResourceNotFound(f"User not found with ID: {user_id}")
        return await self._page(await self.store.projects.find_by_owner(user_id), page, size)

    async def search_projects(
        self, principal: Optional[Principal], term: str, page: int, size: int
    ) -> PageResponse[ProjectResponse]:
        user = await self.guard.resolve_user(principal)
        return await self._page(await self.store.projects.search_by_owner(user.id, term), page, size)

    async def get_project(self, principal: Optional[Principal], project_id: int) -> ProjectResponse:
        await self.guard.require_resource_access(principal, "project", project_id)
        return await self._to_response(await self._load(project_id))

    async def update_project(
        self, principal: Optional[Principal], project_id: int, request: ProjectRequest
    ) -> ProjectResponse:
        await self.guard.require_resource_access(principal, "project", project_id)
        project = await self._load(project_id)
        project = await self.store.projects.save(
            project.model_copy(update={"name": request.name, "description": request.description})
        )
        self.logger.info("Project updated", project_id=project_id)
        return await self._to_response(project)

    async def delete_project(self, principal: Optional[Principal], project_id: int) -> None:
        await self.guard.require_resource_access(principal, "project", project_id)
        removed = await self.store.tasks.delete_by_project(project_id)
        await self.store.projects.delete(project_id)
        self.logger.info("Project deleted", project_id=project_id, tasks_removed=removed)

    async def _load(self, project_id: int) -> Project:
        project = await self.store.projects.find_by_id(project_id)
        if project is None:
            raise ResourceNotFound(f"Project not found with ID: {project_id}")
        return project


class TaskService:
    """Task CRUD; access follows the parent project's owner."""

    def __init__(self, store: InMemoryStore, guard: AuthorizationGuard):
        self.store = store
        self.guard = guard
        self.logger = get_logger("task-manager.tasks")

    async def create_task(
        self, principal: Optional[Principal], project_id: int, request: TaskRequest
    ) -> TaskResponse:
        await self.guard.require_resource_access(principal, "project", project_id)
        project = await self.store.projects.find_by_id(project_id)

        if await self.store.tasks.exists_by_title_and_project(request.title, project_id):
            raise ValidationError(
                f"Task with title '{request.title}' already exists in this project",
                details={"field": "title"},
            )

        task = await self.store.tasks.save(
            Task(
                title=request.title,
                description=request.description,
                status=request.status,
                project_id=project_id,
            )
        )
        self.logger.info("Task created", task_id=task.id, project_id=project_id)
        return TaskResponse.from_entity(task, project)

    async def get_task(self, principal: Optional[Principal], project_id: int, task_id: int) -> TaskResponse:
        await self.guard.require_resource_access(principal, "project", project_id)
        task = await self._load(project_id, task_id)
        return TaskResponse.from_entity(task, await self.store.projects.find_by_id(project_id))

    async def get_project_tasks(
        self,
        principal: Optional[Principal],
        project_id: int,
        status: Optional[TaskStatus],
        page: int,
        size: int,
    ) -> PageResponse[TaskResponse]:
        await self.guard.require_resource_access(principal, "project", project_id)
        project = await self.store.projects.find_by_id(project_id)
        tasks = await self.store.tasks.find_by_project(project_id, status)
        return PageResponse.of([TaskResponse.from_entity(t, project) for t in tasks], page, size)

    async def get_current_user_tasks(
        self, principal: Optional[Principal], status: Optional[TaskStatus], page: int, size: int
    ) -> PageResponse[TaskResponse]:
        user = await self.guard.resolve_user(principal)
        return await self._owner_tasks(user.id, status, page, size)

    async def get_user_tasks_by_id(
        self,
        principal: Optional[Principal],
        user_id: int,
        status: Optional[TaskStatus],
        page: int,
        size: int,
    ) -> PageResponse[TaskResponse]:
        await self.guard.resolve_user(principal)
        self.guard.require_admin(principal)
        if await self.store.users.find_by_id(user_id) is None:
            raise ResourceNotFound(f"User not found with ID: {user_id}")
        return await self._owner_tasks(user_id, status, page, size)

    async def update_task(
        self, principal: Optional[Principal], project_id: int, task_id: int, request: TaskRequest
    ) -> TaskResponse:
        await self.guard.require_resource_access(principal, "project", project_id)
        task = await self._load(project_id, task_id)

        if request.title != task.title and await self.store.tasks.exists_by_title_and_project(
            request.title, project_id, exclude_id=task_id
        ):
            raise ValidationError(
                f"Task with title '{request.title}' already exists in this project",
                details={"field": "title"},
            )

        task = await self.store.tasks.save(
            task.model_copy(
                update={"title": request.title, "description": request.description, "status": request.status}
            )
        )
        self.logger.info("Task updated", task_id=task_id, project_id=project_id)
        return TaskResponse.from_entity(task, await self.store.projects.find_by_id(project_id))

    async def update_task_status(
        self, principal: Optional[Principal], project_id: int, task_id: int, status: TaskStatus
    ) -> TaskResponse:
        await self.guard.require_resource_access(principal, "project", project_id)
        task = await self._load(project_id, task_id)
        previous = task.status
        task = await self.store.tasks.save(task.model_copy(update={"status": status}))
        self.logger.info(
            "Task status changed",
            task_id=task_id,
            from_status=previous.value,
            to_status=status.value,
        )
        return TaskResponse.from_entity(task, await self.store.projects.find_by_id(project_id))

    async def delete_task(self, principal: Optional[Principal], project_id: int, task_id: int) -> None:
        await self.guard.require_resource_access(principal, "project", project_id)
        await self._load(project_id, task_id)
        await self.store.tasks.delete(task_id)
        self.logger.info("Task deleted", task_id=task_id, project_id=project_id)

    async def _owner_tasks(self, owner_id: int, status: Optional[TaskStatus], page: int, size: int):
        projects = {p.id: p for p in await self.store.projects.find_by_owner(owner_id)}
        tasks = await self.store.tasks.find_by_project_owner(owner_id, status)
        return PageResponse.of([TaskResponse.from_entity(t, projects.get(t.project_id)) for t in tasks], page, size)

    async def _load(self, project_id: int, task_id: int) -> Task:
        task = await self.store.tasks.find_by_id_and_project(task_id, project_id)
        if task is None:
            raise ResourceNotFound(f"Task not found with ID: {task_id}")
        return task
