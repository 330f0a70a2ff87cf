"""Identity service: account registration, credential checks, token issue.

User persistence sits behind the :class:`UserStore` protocol so the
relational store is one pluggable backend; :class:`SqlUserStore` is the
SQLModel implementation used by the API.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Protocol

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..errors import AuthenticationError, ConflictError, StorageError, ValidationError
from ..models import User
from ..settings import JwtSettings, PasswordPolicy
from .auth import create_token, hash_password, verify_password

USERNAME_RE = re.compile(r"^[A-Za-z0-9\-._@+]{3,64}$")


def normalize_username(username: str) -> str:
    return username.strip().upper()


class UserStore(Protocol):
    def create_user(self, username: str, password_hash: str, role: str = "user") -> User: ...
    def find_by_username(self, username: str) -> Optional[User]: ...
    def get(self, user_id: int) -> Optional[User]: ...
    def verify_credentials(self, username: str, password: str) -> Optional[User]: ...
    def first_user_id(self) -> Optional[int]: ...
    def set_role(self, user: User, role: str) -> User: ...
    def list_users(self) -> List[User]: ...


class SqlUserStore:
    def __init__(self, session: Session):
        self.session = session

    def create_user(self, username: str, password_hash: str, role: str = "user") -> User:
        user = User(
            username=username,
            normalized_username=normalize_username(username),
            password_hash=password_hash,
            role=role,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError(f"Username '{username}' is already taken", {"username": username})
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(f"Could not create user: {e.__class__.__name__}")
        self.session.refresh(user)
        return user

    def find_by_username(self, username: str) -> Optional[User]:
        stmt = select(User).where(User.normalized_username == normalize_username(username))
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def verify_credentials(self, username: str, password: str) -> Optional[User]:
        user = self.find_by_username(username)
        if not user or not verify_password(password, user.password_hash):
            return None
        return user

    def first_user_id(self) -> Optional[int]:
        return self.session.exec(select(func.min(User.id))).one()

    def set_role(self, user: User, role: str) -> User:
        user.role = role
        self.session.add(user)
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(f"Could not update user role: {e.__class__.__name__}")
        self.session.refresh(user)
        return user

    def list_users(self) -> List[User]:
        return list(self.session.exec(select(User).order_by(User.id)))


@dataclass(frozen=True)
class AuthResult:
    token: str
    user: User

    def to_dict(self) -> dict:
        return {"token": self.token, "user": {"id": self.user.id, "username": self.user.username, "role": self.user.role}}


class IdentityService:
    def __init__(self, store: UserStore, jwt_settings: JwtSettings, password_policy: PasswordPolicy):
        self.store = store
        self.jwt_settings = jwt_settings
        self.password_policy = password_policy

    def register(self, username: str, password: str) -> AuthResult:
        username = username.strip()
        if not USERNAME_RE.match(username):
            raise ValidationError(
                "Username must be 3-64 characters of letters, digits or -._@+",
                {"username": username},
            )
        problems = self.password_policy.violations(password)
        if problems:
            raise ValidationError("Password does not meet requirements", {"password": problems})
        if self.store.find_by_username(username):
            raise ConflictError(f"Username '{username}' is already taken", {"username": username})

        user = self.store.create_user(username, hash_password(password))
        # the lowest id becomes admin; decided after the insert so two concurrent
        # first registrations cannot both see an empty table
        if self.store.first_user_id() == user.id:
            user = self.store.set_role(user, "admin")
        logger.info("registered user id={} role={}", user.id, user.role)
        return AuthResult(create_token(user, self.jwt_settings), user)

    def login(self, username: str, password: str) -> AuthResult:
        user = self.store.verify_credentials(username, password)
        if not user:
            logger.warning("failed login for username={!r}", username)
            raise AuthenticationError("Invalid credentials")
        return AuthResult(create_token(user, self.jwt_settings), user)


__all__ = ["UserStore", "SqlUserStore", "IdentityService", "AuthResult", "normalize_username"]
