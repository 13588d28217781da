"""
Task Manager service for TaskHub.
Manages projects and their tasks on behalf of authenticated users.
"""

from typing import Optional, Tuple

import httpx
from fastapi import Depends, Query, Response, status

from service_auth.app.authorization import AuthorizationGuard
from service_auth.app.factory import build_auth_components
from service_auth.app.context import get_principal
from service_auth.app.validation.claims import Principal
from shared.base_service import BaseService
from shared.config import ServiceConfig
from .models import (
    PageResponse,
    ProjectRequest,
    ProjectResponse,
    TaskRequest,
    TaskResponse,
    TaskStatus,
    UpdateTaskStatusRequest,
    UserResponse,
)
from .persistence import InMemoryStore
from .services import ProjectService, TaskService, UserService


class TaskManagerService(BaseService):
    """Task Manager service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        store: Optional[InMemoryStore] = None,
    ):
        super().__init__("task-manager", 8080, config=config)

        self.auth = build_auth_components(self.config, metrics=self.metrics, transport=transport)
        self.auth.context.install(self.app)

        # In-memory storage (would be replaced with database)
        self.store = store or InMemoryStore()
        self.guard = AuthorizationGuard(self.store.users, metrics=self.metrics)
        # Task routes are nested under their project, which carries ownership.
        self.guard.register_resource("project", self.store.projects.find_resource_owner)

        self.users = UserService(self.store, self.guard)
        self.projects = ProjectService(self.store, self.guard)
        self.tasks = TaskService(self.store, self.guard)

        self._setup_project_routes()
        self._setup_task_routes()
        self._setup_user_routes()

    def _pagination(self):
        config = self.config

        def pagination(
            page: int = Query(0, ge=0, description="Zero-based page number"),
            size: Optional[int] = Query(None, ge=1, description="Page size"),
        ) -> Tuple[int, int]:
            return page, min(size or config.default_page_size, config.max_page_size)

        return pagination

    def _setup_project_routes(self):
        """Set up project routes."""
        paging = self._pagination()

        @self.app.post(
            "/api/projects",
            response_model=ProjectResponse,
            status_code=status.HTTP_201_CREATED,
        )
        async def create_project(request: ProjectRequest, principal: Optional[Principal] = Depends(get_principal)):
            """Create a project owned by the caller."""
            return await self.projects.create_project(principal, request)

        @self.app.get("/api/projects", response_model=PageResponse[ProjectResponse])
        async def list_projects(
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """List the caller's projects, newest first."""
            return await self.projects.get_current_user_projects(principal, *window)

        @self.app.get("/api/projects/search", response_model=PageResponse[ProjectResponse])
        async def search_projects(
            name: str = Query(..., min_length=1, description="Case-insensitive name fragment"),
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """Search the caller's projects by name."""
            return await self.projects.search_projects(principal, name, *window)

        @self.app.get("/api/projects/{project_id}", response_model=ProjectResponse)
        async def get_project(project_id: int, principal: Optional[Principal] = Depends(get_principal)):
            """Get a project."""
            return await self.projects.get_project(principal, project_id)

        @self.app.put("/api/projects/{project_id}", response_model=ProjectResponse)
        async def update_project(
            project_id: int,
            request: ProjectRequest,
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """Replace a project's name and description."""
            return await self.projects.update_project(principal, project_id, request)

        @self.app.delete("/api/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
        async def delete_project(project_id: int, principal: Optional[Principal] = Depends(get_principal)):
            """Delete a project and all of its tasks."""
            await self.projects.delete_project(principal, project_id)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

    def _setup_task_routes(self):
        """Set up task routes nested under their project."""
        paging = self._pagination()

        @self.app.post(
            "/api/projects/{project_id}/tasks",
            response_model=TaskResponse,
            status_code=status.HTTP_201_CREATED,
        )
        async def create_task(
            project_id: int,
            request: TaskRequest,
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """Create a task in a project."""
            return await self.tasks.create_task(principal, project_id, request)

        @self.app.get("/api/projects/{project_id}/tasks", response_model=PageResponse[TaskResponse])
        async def list_tasks(
            project_id: int,
            task_status: Optional[TaskStatus] = Query(None, alias="status"),
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """List a project's tasks, optionally filtered by status."""
            return await self.tasks.get_project_tasks(principal, project_id, task_status, *window)

        @self.app.get("/api/projects/{project_id}/tasks/{task_id}", response_model=TaskResponse)
        async def get_task(
            project_id: int,
            task_id: int,
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """Get a task."""
            return await self.tasks.get_task(principal, project_id, task_id)

        @self.app.put("/api/projects/{project_id}/tasks/{task_id}", response_model=TaskResponse)
        async def update_task(
            project_id: int,
            task_id: int,
            request: TaskRequest,
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """Replace a task."""
            return await self.tasks.update_task(principal, project_id, task_id, request)

        @self.app.patch("/api/projects/{project_id}/tasks/{task_id}/status", response_model=TaskResponse)
        async def update_task_status(
            project_id: int,
            task_id: int,
            request: UpdateTaskStatusRequest,
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """Change only a task's status."""
            return await self.tasks.update_task_status(principal, project_id, task_id, request.status)

        @self.app.delete("/api/projects/{project_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
        async def delete_task(
            project_id: int,
            task_id: int,
            principal: Optional[Principal] = Depends(get_principal),
        ):
            """Delete a task."""
            await self.tasks.delete_task(principal, project_id, task_id)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

    def _setup_user_routes(self):
        """Set up user routes; everything except /me is admin only."""
        paging = self._pagination()

        @self.app.get("/api/users/me", response_model=UserResponse)
        async def get_current_user(principal: Optional[Principal] = Depends(get_principal)):
            """Get (or create on first use) the caller's profile."""
            return await self.users.get_current_user_profile(principal)

        @self.app.get("/api/users/me/projects", response_model=PageResponse[ProjectResponse])
        async def get_my_projects(
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            return await self.projects.get_current_user_projects(principal, *window)

        @self.app.get("/api/users/me/tasks", response_model=PageResponse[TaskResponse])
        async def get_my_tasks(
            task_status: Optional[TaskStatus] = Query(None, alias="status"),
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            return await self.tasks.get_current_user_tasks(principal, task_status, *window)

        @self.app.get("/api/users", response_model=PageResponse[UserResponse])
        async def list_users(
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            return await self.users.get_all_users(principal, *window)

        @self.app.get("/api/users/{user_id}", response_model=UserResponse)
        async def get_user(user_id: int, principal: Optional[Principal] = Depends(get_principal)):
            return await self.users.get_user_profile_by_id(principal, user_id)

        @self.app.get("/api/users/{user_id}/projects", response_model=PageResponse[ProjectResponse])
        async def get_user_projects(
            user_id: int,
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            return await self.projects.get_user_projects_by_id(principal, user_id, *window)

        @self.app.get("/api/users/{user_id}/tasks", response_model=PageResponse[TaskResponse])
        async def get_user_tasks(
            user_id: int,
            task_status: Optional[TaskStatus] = Query(None, alias="status"),
            window: Tuple[int, int] = Depends(paging),
            principal: Optional[Principal] = Depends(get_principal),
        ):
            return await self.tasks.get_user_tasks_by_id(principal, user_id, task_status, *window)

    async def _check_dependencies(self):
        """Check task manager dependencies."""
        return {"jwks": await self.auth.key_cache.check_health()}


def create_app(
    config: Optional[ServiceConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
):
    """Create FastAPI application."""
    service = TaskManagerService(config=config, transport=transport)
    return service.app


if __name__ == "__main__":
    service = TaskManagerService()
    service.run()
