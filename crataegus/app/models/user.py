"""
User database model.

This module defines the User SQLAlchemy model for authentication and for the
ownership check applied to every ingested location.
"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from crataegus.app.db.session import Base


class User(Base):
    """
    User model.

    Username is the primary key; location records reference it by value.
    """
    __tablename__ = "users"

    username = Column(String(100), primary_key=True)
    hashed_password = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(username='{self.username}')>"
