"""
Message ledger: create, fetch and mark-read for direct messages.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from messagely.errors import NotFoundError, StorageError, ValidationError
from messagely.models import Message, User
from messagely.utils import clean, utcnow

logger = logging.getLogger(__name__)


def create_message(
    db: Session,
    from_username: Optional[str],
    to_username: Optional[str],
    body: Optional[str],
) -> dict:
    """
    Store a new message with sent_at = now and read_at unset.

    Args:
        db: Database session
        from_username: Sender (the logged-in user)
        to_username: Recipient
        body: Message text

    Returns:
        {id, from_username, to_username, body, sent_at, read_at}

    Raises:
        ValidationError: recipient or body missing
        NotFoundError: sender or recipient does not exist
        StorageError: any other database failure
    """
    from_username = clean(from_username)
    to_username = clean(to_username)
    if not from_username or not to_username or not clean(body):
        raise ValidationError("to_username and body are required.")

    for username in (from_username, to_username):
        if db.get(User, username) is None:
            raise NotFoundError(f"Username '{username}' was not found.")

    message = Message(
        from_username=from_username,
        to_username=to_username,
        body=body,
        sent_at=utcnow(),
        read_at=None,
    )

    logger.info(f"Creating message: from={from_username}, to={to_username}")
    try:
        db.add(message)
        db.commit()
    except IntegrityError as e:
        # A user vanished between the pre-check and the insert
        db.rollback()
        logger.warning(f"Message rejected by foreign key check: {e}")
        raise NotFoundError("Sender or recipient was not found.")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create message from {from_username}: {e}")
        raise StorageError("Failed to create message") from e

    db.refresh(message)
    logger.info(f"Message created successfully: {message.id}")
    return {
        "id": message.id,
        "from_username": message.from_username,
        "to_username": message.to_username,
        "body": message.body,
        "sent_at": message.sent_at,
        "read_at": message.read_at,
    }


def _get_or_404(db: Session, message_id: int) -> Message:
    message = db.get(Message, message_id)
    if message is None:
        logger.info(f"Message lookup result: not found ({message_id})")
        raise NotFoundError(f"Message '{message_id}' was not found.")
    return message


def get_message(db: Session, message_id: int) -> dict:
    """
    Get a message with both parties expanded.

    Returns:
        {id, body, sent_at, read_at,
         from_user: {username, first_name, last_name, phone},
         to_user: {username, first_name, last_name, phone}}

    Raises:
        NotFoundError: no message with this id
    """
    message = _get_or_404(db, message_id)
    from_user = db.get(User, message.from_username)
    to_user = db.get(User, message.to_username)

    return {
        "id": message.id,
        "body": message.body,
        "sent_at": message.sent_at,
        "read_at": message.read_at,
        "from_user": from_user.profile(),
        "to_user": to_user.profile(),
    }


def mark_read(db: Session, message_id: int) -> dict:
    """
    Set read_at to now. Calling it again moves the timestamp forward.

    Returns:
        {id, read_at}

    Raises:
        NotFoundError: no message with this id
    """
    message = _get_or_404(db, message_id)
    message.read_at = utcnow()
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark message {message_id} read: {e}")
        raise StorageError("Failed to mark message read") from e

    logger.info(f"Message marked read: {message.id}")
    return {"id": message.id, "read_at": message.read_at}
