from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session

from ..deps import get_db_session
from ..models import ToDoTask, User
from ..services.auth import current_user
from ..services.repository import TodoRepository

router = APIRouter(prefix="/todos", tags=["ToDoTasks"])


def _as_utc(value: datetime | None) -> datetime | None:
    """Naive due dates are taken as UTC; aware ones are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row(payload: BaseModel, **dump_kwargs) -> dict:
    # due dates are stored as UTC ISO strings, like the bookkeeping timestamps
    data = payload.model_dump(**dump_kwargs)
    if data.get("due_date") is not None:
        data["due_date"] = data["due_date"].isoformat()
    return data


class TodoCreate(BaseModel):
    description: str = Field(min_length=1, max_length=1000)
    is_completed: bool = False
    due_date: datetime | None = None

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value):
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, value):
        return _as_utc(value)


class TodoPatch(BaseModel):
    description: str | None = Field(default=None, min_length=1, max_length=1000)
    is_completed: bool | None = None
    due_date: datetime | None = None

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, value):
        if value is not None and not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, value):
        return _as_utc(value)


def get_todo_repository(
    user: User = Depends(current_user),
    session: Session = Depends(get_db_session),
) -> TodoRepository:
    return TodoRepository(session, owner_id=user.id)


def _out(task: ToDoTask) -> dict:
    return {
        "id": task.id,
        "description": task.description,
        "is_completed": task.is_completed,
        "due_date": task.due_date,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }


@router.post('', status_code=201)
def create_todo(payload: TodoCreate, repo: TodoRepository = Depends(get_todo_repository)):
    return _out(repo.create(_row(payload)))


@router.get('')
def list_todos(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    completed: bool | None = Query(None, description="Filter on completion flag"),
    repo: TodoRepository = Depends(get_todo_repository),
):
    page = repo.list(limit=limit, offset=offset, is_completed=completed)
    return {
        "items": [_out(t) for t in page.items],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
        "has_more": page.has_more,
    }


@router.get('/{task_id}')
def get_todo(task_id: int, repo: TodoRepository = Depends(get_todo_repository)):
    return _out(repo.get(task_id))


@router.put('/{task_id}')
def replace_todo(task_id: int, payload: TodoCreate, repo: TodoRepository = Depends(get_todo_repository)):
    return _out(repo.update(task_id, _row(payload)))


@router.patch('/{task_id}')
def patch_todo(task_id: int, payload: TodoPatch, repo: TodoRepository = Depends(get_todo_repository)):
    changes = _row(payload, exclude_unset=True)
    for required in ("description", "is_completed"):
        if required in changes and changes[required] is None:
            changes.pop(required)
    return _out(repo.update(task_id, changes))


@router.delete('/{task_id}')
def delete_todo(task_id: int, repo: TodoRepository = Depends(get_todo_repository)):
    repo.delete(task_id)
    return {"deleted": task_id}
