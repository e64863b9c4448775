from typing import Optional

from fastapi import Depends, HTTPException, Request
from passlib.context import CryptContext
from sqlmodel import Session, select

from .config import DEFAULT_LANGUAGE
from .db import get_session
from .models import Configuration, Person, User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def get_current_user(
    request: Request, session: Session = Depends(get_session)
) -> Optional[User]:
    user_id = request.session.get("user_id")
    if not user_id:
        return None
    return session.get(User, user_id)


def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if not user:
        raise HTTPException(status_code=401, detail="Unauthenticated")
    return user


def require_person(
    user: User = Depends(require_user), session: Session = Depends(get_session)
) -> Person:
    person = session.exec(select(Person).where(Person.user_id == user.id)).first()
    if not person:
        raise HTTPException(status_code=403, detail="PersonNotFound")
    return person


def get_language(
    user: User = Depends(require_user), session: Session = Depends(get_session)
) -> str:
    config = session.exec(select(Configuration).where(Configuration.user_id == user.id)).first()
    return config.language if config else DEFAULT_LANGUAGE


def login_user(request: Request, user: User):
    request.session["user_id"] = user.id


def logout_user(request: Request):
    request.session.clear()
