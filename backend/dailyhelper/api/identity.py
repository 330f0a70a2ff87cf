from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from ..deps import get_db_session, get_settings
from ..models import User
from ..services.auth import current_user, require_role
from ..services.identity import IdentityService, SqlUserStore
from ..settings import Settings

router = APIRouter(prefix="/identity", tags=["Identity"])


class RegisterPayload(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=256)


class LoginPayload(BaseModel):
    username: str
    password: str


def get_identity_service(
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_db_session),
) -> IdentityService:
    return IdentityService(SqlUserStore(session), settings.jwt, settings.password)


def _public(user: User) -> dict:
    return {"id": user.id, "username": user.username, "role": user.role, "created_at": user.created_at}


@router.post('/register')
def register(payload: RegisterPayload, identity: IdentityService = Depends(get_identity_service)):
    return identity.register(payload.username, payload.password).to_dict()


@router.post('/login')
def login(payload: LoginPayload, identity: IdentityService = Depends(get_identity_service)):
    return identity.login(payload.username, payload.password).to_dict()


@router.get('/me')
def me(user: User = Depends(current_user)):
    return _public(user)


@router.get('/users')
def list_users(
    _admin: User = Depends(require_role('admin')),
    session: Session = Depends(get_db_session),
):
    users = SqlUserStore(session).list_users()
    return {"users": [_public(u) for u in users], "total": len(users)}
