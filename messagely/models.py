"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from messagely.storage import Base


class User(Base):
    """
    Registered user.

    Table: users
    Primary Key: username (uniqueness is enforced by the database)
    """
    __tablename__ = "users"

    username = Column(String, primary_key=True, index=True)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    joined_at = Column(DateTime(timezone=True), nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=False)

    def profile(self) -> dict:
        """Public projection shown to other users."""
        return {
            "username": self.username,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
        }


class Message(Base):
    """
    Direct message between two users.

    Table: messages
    read_at stays NULL until the recipient marks the message read.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_username = Column(String, ForeignKey("users.username"), nullable=False, index=True)
    to_username = Column(String, ForeignKey("users.username"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
