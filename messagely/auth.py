"""
Bearer tokens and authorization guards.

Tokens are PyJWT HS256 tokens carrying the username. They do not expire
unless ``TOKEN_EXPIRY_SECONDS`` is configured.

The guards are plain FastAPI dependencies that build on each other:

    get_current_user          -> any valid token
    ensure_correct_user       -> token user == {username} path parameter
    ensure_message_party      -> token user sent or received {message_id}
    ensure_message_recipient  -> token user received {message_id}
"""

import logging
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from messagely.config import Settings, get_settings
from messagely.errors import AuthError, AuthorizationError
from messagely.messages import get_message
from messagely.storage import get_db
from messagely.utils import utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

_bearer_scheme = HTTPBearer(auto_error=False)


def issue_token(username: str, settings: Settings) -> str:
    """Create a signed token for ``username``."""
    now = utcnow()
    payload = {"username": username, "iat": now}
    if settings.TOKEN_EXPIRY_SECONDS:
        payload["exp"] = now + timedelta(seconds=settings.TOKEN_EXPIRY_SECONDS)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: Optional[str], settings: Settings) -> dict:
    """
    Verify a token and return the identity it carries.

    Returns:
        {"username": ...}

    Raises:
        AuthError: token missing, malformed, forged or expired
    """
    if not token:
        raise AuthError("Unauthorized")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise AuthError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected invalid token: {e}")
        raise AuthError("Unauthorized")

    username = payload.get("username")
    if not isinstance(username, str) or not username:
        raise AuthError("Unauthorized")
    return {"username": username}


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> dict:
    """Logged-in guard: return the caller's identity or raise AuthError."""
    if credentials is None:
        raise AuthError("Unauthorized")
    return verify_token(credentials.credentials, settings)


def ensure_correct_user(
    username: str,
    current_user: dict = Depends(get_current_user),
) -> dict:
    """Caller must be the user named in the ``{username}`` path parameter."""
    if current_user["username"] != username.strip():
        logger.info(f"User {current_user['username']} denied access to {username}")
        raise AuthorizationError("Unauthorized")
    return current_user


def ensure_message_party(
    message_id: int,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Caller must be the sender or the recipient. Returns the message detail."""
    message = get_message(db, message_id)
    caller = current_user["username"]
    if caller not in (message["from_user"]["username"], message["to_user"]["username"]):
        logger.info(f"User {caller} denied access to message {message_id}")
        raise AuthorizationError("Unauthorized")
    return message


def ensure_message_recipient(
    message_id: int,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """Caller must be the recipient. Returns the message detail."""
    message = get_message(db, message_id)
    caller = current_user["username"]
    if caller != message["to_user"]["username"]:
        logger.info(f"User {caller} may not mark message {message_id} read")
        raise AuthorizationError("Unauthorized")
    return message
