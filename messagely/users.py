"""
User directory: registration, authentication and user lookups.

All functions take an open SQLAlchemy session and raise errors from
messagely.errors; the API layer turns those into HTTP responses.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from messagely.errors import ConflictError, NotFoundError, StorageError, ValidationError
from messagely.models import Message, User
from messagely.security import MAX_PASSWORD_BYTES, dummy_hash, hash_password, verify_password
from messagely.utils import clean, missing_fields, utcnow

logger = logging.getLogger(__name__)

REGISTRATION_FIELDS = ("username", "password", "first_name", "last_name", "phone")


def _detail(user: User) -> dict:
    return {
        **user.profile(),
        "joined_at": user.joined_at,
        "last_login_at": user.last_login_at,
    }


def register_user(db: Session, fields: dict, work_factor: int) -> dict:
    """
    Register a new user.

    Args:
        db: Database session
        fields: username, password, first_name, last_name, phone
        work_factor: bcrypt cost for the password hash

    Returns:
        Public user projection (no password hash)

    Raises:
        ValidationError: a required field is missing or blank, or the password is too long
        ConflictError: the username is already taken
        StorageError: any other database failure
    """
    if missing_fields(fields, REGISTRATION_FIELDS):
        raise ValidationError(
            "username, password, first_name, last_name, and phone are required."
        )
    if len(fields["password"].encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes.")

    username = clean(fields["username"])
    now = utcnow()
    user = User(
        username=username,
        password_hash=hash_password(fields["password"], work_factor),
        first_name=clean(fields["first_name"]),
        last_name=clean(fields["last_name"]),
        phone=clean(fields["phone"]),
        joined_at=now,
        last_login_at=now,
    )

    logger.info(f"Registering user: {username}")
    try:
        db.add(user)
        db.commit()
    except IntegrityError:
        # Primary key on username is the only guard against concurrent duplicates
        db.rollback()
        logger.info(f"Duplicate username rejected: {username}")
        raise ConflictError(
            f"Username '{username}' already exists. Please select a different username."
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to register user {username}: {e}")
        raise StorageError("Failed to register user") from e

    logger.info(f"User registered successfully: {username}")
    return {
        **user.profile(),
        "joined_at": now,
        "last_login_at": now,
    }


def authenticate(
    db: Session,
    username: Optional[str],
    password: Optional[str],
    work_factor: int,
) -> bool:
    """
    Check a username/password pair.

    Unknown users and wrong passwords both return False, and an unknown
    user still pays for one bcrypt check.

    Args:
        db: Database session
        username: Username as typed (trimmed before lookup)
        password: Plaintext password (used as given)
        work_factor: bcrypt cost of the stand-in hash for unknown users

    Returns:
        True only when the user exists and the password matches
    """
    username = clean(username)
    if not username or not isinstance(password, str) or not password:
        return False

    user = db.query(User).filter(User.username == username).first()
    if user is None:
        verify_password(password, dummy_hash(work_factor))
        return False

    return verify_password(password, user.password_hash)


def update_login_timestamp(db: Session, username: Optional[str]) -> None:
    """
    Set last_login_at to now.

    Raises:
        NotFoundError: no user with this username
    """
    username = clean(username)
    user = db.query(User).filter(User.username == username).first() if username else None
    if user is None:
        raise NotFoundError("username not found.")

    user.last_login_at = utcnow()
    db.commit()
    logger.debug(f"Updated last_login_at for {username}")


def all_users(db: Session) -> list:
    """Basic info on every user: [{username, first_name, last_name, phone}, ...]."""
    users = db.query(User).order_by(User.username.asc()).all()
    logger.debug(f"Listing {len(users)} users")
    return [user.profile() for user in users]


def get_user(db: Session, username: Optional[str]) -> dict:
    """
    Get a user by username.

    Returns:
        {username, first_name, last_name, phone, joined_at, last_login_at}

    Raises:
        ValidationError: username is blank
        NotFoundError: no such user
    """
    username = clean(username)
    if not username:
        raise ValidationError("username is required.")

    user = db.query(User).filter(User.username == username).first()
    if user is None:
        raise NotFoundError(f"Username '{username}' was not found.")
    return _detail(user)


def _messages_with_counterparty(db: Session, username: Optional[str], outgoing: bool) -> list:
    username = clean(username)
    if not username:
        raise ValidationError("username is required.")

    if outgoing:
        own_column, other_column, key = Message.from_username, Message.to_username, "to_user"
    else:
        own_column, other_column, key = Message.to_username, Message.from_username, "from_user"

    rows = (
        db.query(Message, User)
        .join(User, other_column == User.username)
        .filter(own_column == username)
        .order_by(Message.sent_at.asc(), Message.id.asc())
        .all()
    )
    logger.debug(f"Found {len(rows)} {'outgoing' if outgoing else 'incoming'} messages for {username}")

    return [
        {
            "id": message.id,
            key: counterparty.profile(),
            "body": message.body,
            "sent_at": message.sent_at,
            "read_at": message.read_at,
        }
        for message, counterparty in rows
    ]


def messages_from(db: Session, username: Optional[str]) -> list:
    """
    Messages sent by this user, oldest first.

    Returns:
        [{id, to_user, body, sent_at, read_at}, ...] where to_user is
        {username, first_name, last_name, phone}; [] when there are none
    """
    return _messages_with_counterparty(db, username, outgoing=True)


def messages_to(db: Session, username: Optional[str]) -> list:
    """
    Messages received by this user, oldest first.

    Returns:
        [{id, from_user, body, sent_at, read_at}, ...]; [] when there are none
    """
    return _messages_with_counterparty(db, username, outgoing=False)
