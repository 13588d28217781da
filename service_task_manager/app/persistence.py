"""
In-memory repositories for users, projects and tasks.

Each repository hands out copies so callers cannot mutate stored state
without going through ``save``. All operations run on the event loop
without awaiting in between, so a check followed by an insert is atomic.
"""

import itertools
from typing import Dict, List, Optional

from service_auth.app.validation.claims import Role
from shared.logging import get_logger
from .models import Project, Task, TaskStatus, User, utcnow

logger = get_logger("task-manager.persistence")


def _newest_first(items):
    return sorted(items, key=lambda item: (item.created_at, item.id), reverse=True)


class UserRepository:
    """Users keyed by internal id, unique by subject."""

    def __init__(self):
        self._users: Dict[int, User] = {}
        self._by_subject: Dict[str, int] = {}
        self._ids = itertools.count(1)

    async def find_user_by_subject(self, subject: str) -> Optional[User]:
        user_id = self._by_subject.get(subject)
        return self._users[user_id].model_copy() if user_id is not None else None

    async def create_user(self, subject: str, email: str, name: str, role: Role) -> User:
        """Create the user for ``subject``, or return the existing one."""
        existing = self._by_subject.get(subject)
        if existing is not None:
            return self._users[existing].model_copy()

        user = User(id=next(self._ids), subject=subject, email=email, name=name, role=role)
        self._users[user.id] = user
        self._by_subject[subject] = user.id
        logger.info("User created", user_id=user.id, subject=subject, role=role.value)
        return user.model_copy()

    async def find_by_id(self, user_id: int) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def find_all(self) -> List[User]:
        return [user.model_copy() for user in sorted(self._users.values(), key=lambda u: u.id)]


class ProjectRepository:
    """Projects keyed by id, each with one owner."""

    def __init__(self):
        self._projects: Dict[int, Project] = {}
        self._ids = itertools.count(1)

    async def save(self, project: Project) -> Project:
        if project.id is None:
            project = project.model_copy(update={"id": next(self._ids)})
        else:
            project = project.model_copy(update={"updated_at": utcnow()})
        self._projects[project.id] = project
        return project.model_copy()

    async def find_by_id(self, project_id: int) -> Optional[Project]:
        project = self._projects.get(project_id)
        return project.model_copy() if project else None

    async def find_by_owner(self, owner_id: int) -> List[Project]:
        return [p.model_copy() for p in _newest_first(self._projects.values()) if p.owner_id == owner_id]

    async def search_by_owner(self, owner_id: int, term: str) -> List[Project]:
        """Owner's projects whose name contains ``term``, case-insensitively."""
        needle = term.strip().lower()
        return [p for p in await self.find_by_owner(owner_id) if needle in p.name.lower()]

    async def delete(self, project_id: int) -> None:
        self._projects.pop(project_id, None)

    async def find_resource_owner(self, project_id: int) -> Optional[int]:
        project = self._projects.get(project_id)
        return project.owner_id if project else None


class TaskRepository:
    """Tasks keyed by id; ownership resolves through the parent project."""

    def __init__(self, projects: ProjectRepository):
        self._tasks: Dict[int, Task] = {}
        self._projects = projects
        self._ids = itertools.count(1)

    async def save(self, task: Task) -> Task:
        if task.id is None:
            task = task.model_copy(update={"id": next(self._ids)})
        else:
            task = task.model_copy(update={"updated_at": utcnow()})
        self._tasks[task.id] = task
        return task.model_copy()

    async def find_by_id_and_project(self, task_id: int, project_id: int) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None or task.project_id != project_id:
            return None
        return task.model_copy()

    async def find_by_project(self, project_id: int, status: Optional[TaskStatus] = None) -> List[Task]:
        return [
            t.model_copy()
            for t in _newest_first(self._tasks.values())
            if t.project_id == project_id and (status is None or t.status == status)
        ]

    async def find_by_project_owner(self, owner_id: int, status: Optional[TaskStatus] = None) -> List[Task]:
        owned = {p.id for p in await self._projects.find_by_owner(owner_id)}
        return [
            t.model_copy()
            for t in _newest_first(self._tasks.values())
            if t.project_id in owned and (status is None or t.status == status)
        ]

    async def count_by_project(self, project_id: int) -> int:
        return sum(1 for t in self._tasks.values() if t.project_id == project_id)

    async def exists_by_title_and_project(self, title: str, project_id: int, exclude_id: Optional[int] = None) -> bool:
        return any(
            t.project_id == project_id and t.title == title and t.id != exclude_id
            for t in self._tasks.values()
        )

    async def delete(self, task_id: int) -> None:
        self._tasks.pop(task_id, None)

    async def delete_by_project(self, project_id: int) -> int:
        doomed = [task_id for task_id, t in self._tasks.items() if t.project_id == project_id]
        for task_id in doomed:
            del self._tasks[task_id]
        return len(doomed)

    async def find_resource_owner(self, task_id: int) -> Optional[int]:
        task = self._tasks.get(task_id)
        if task is None:
            return None
        return await self._projects.find_resource_owner(task.project_id)


class InMemoryStore:
    """Bundle of the three repositories sharing one process lifetime."""

    def __init__(self):
        self.users = UserRepository()
        self.projects = ProjectRepository()
        self.tasks = TaskRepository(self.projects)
