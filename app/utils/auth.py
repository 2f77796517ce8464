"""
Password hashing and current-user lookup.

Sessions follow the cookie scheme set by ``/login``: the ``username``
cookie names the logged-in user.
"""

import bcrypt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.db import get_db
from app.errors import UnauthenticatedError
from app.models.user import User


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def get_current_user(request: Request, db: Session):
    """Get the logged-in user from cookies."""
    username = request.cookies.get("username")
    if not username:
        return None
    return db.query(User).filter(User.username == username).first()


def require_api_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Dependency for JSON endpoints: the current user or a 401."""
    user = get_current_user(request, db)
    if not user:
        raise UnauthenticatedError("Not authenticated")
    return user
