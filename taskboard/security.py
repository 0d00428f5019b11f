from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import JWT_ALGORITHM, SECRET_KEY
from .db import get_db
from .errors import Unauthorized
from .storage import TodoStore

logger = logging.getLogger(__name__)

# auto_error=False so a missing header goes through our own 401 envelope
auth_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    user_id: uuid.UUID,
    email: str,
    name: Optional[str] = None,
    expires_delta: timedelta = timedelta(minutes=60),
) -> str:
    """Issue a session token the way the auth provider does (used by tooling and tests)."""
    now = datetime.now(timezone.utc)
    claims: Dict[str, Any] = {"sub": str(user_id), "email": email, "iat": now, "exp": now + expires_delta}
    if name:
        claims["name"] = name
    return jwt.encode(claims, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
    db: Session = Depends(get_db),
) -> uuid.UUID:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("No user found in session")
    try:
        payload = decode_token(credentials.credentials)
    except JWTError as e:
        logger.info("Rejected session token: %s", e)
        raise Unauthorized("Invalid session token") from e
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError as e:
        raise Unauthorized("Invalid session token: bad subject") from e
    email = payload.get("email")
    if not email:
        raise Unauthorized("Invalid session token: missing email")
    TodoStore(db).ensure_user(user_id, email, payload.get("name"))
    return user_id
