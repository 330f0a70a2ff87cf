from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session

from ..deps import get_db_session
from ..models import Note, User
from ..services.auth import current_user
from ..services.repository import NoteRepository

router = APIRouter(prefix="/notes", tags=["Notes"])


class NoteCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(default="", max_length=20000)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value):
        if value is not None and not value.strip():
            raise ValueError("must not be blank")
        return value


class NotePatch(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    body: str | None = Field(default=None, max_length=20000)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value):
        if value is not None and not value.strip():
            raise ValueError("must not be blank")
        return value


def get_note_repository(
    user: User = Depends(current_user),
    session: Session = Depends(get_db_session),
) -> NoteRepository:
    return NoteRepository(session, owner_id=user.id)


def _out(note: Note) -> dict:
    return {
        "id": note.id,
        "title": note.title,
        "body": note.body,
        "created_at": note.created_at,
        "updated_at": note.updated_at,
    }


@router.post('', status_code=201)
def create_note(payload: NoteCreate, repo: NoteRepository = Depends(get_note_repository)):
    return _out(repo.create(payload.model_dump()))


@router.get('')
def list_notes(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    repo: NoteRepository = Depends(get_note_repository),
):
    page = repo.list(limit=limit, offset=offset)
    return {
        "items": [_out(n) for n in page.items],
        "total": page.total,
        "limit": page.limit,
        "offset": page.offset,
        "has_more": page.has_more,
    }


@router.get('/{note_id}')
def get_note(note_id: int, repo: NoteRepository = Depends(get_note_repository)):
    return _out(repo.get(note_id))


@router.put('/{note_id}')
def replace_note(note_id: int, payload: NoteCreate, repo: NoteRepository = Depends(get_note_repository)):
    return _out(repo.update(note_id, payload.model_dump()))


@router.patch('/{note_id}')
def patch_note(note_id: int, payload: NotePatch, repo: NoteRepository = Depends(get_note_repository)):
    changes = payload.model_dump(exclude_unset=True)
    # explicit null on body clears it
    if "body" in changes and changes["body"] is None:
        changes["body"] = ""
    if "title" in changes and changes["title"] is None:
        changes.pop("title")
    return _out(repo.update(note_id, changes))


@router.delete('/{note_id}')
def delete_note(note_id: int, repo: NoteRepository = Depends(get_note_repository)):
    repo.delete(note_id)
    return {"deleted": note_id}
