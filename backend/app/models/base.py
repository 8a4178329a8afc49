from datetime import datetime

from sqlalchemy import Column, DateTime

from ..database import Base  # This is the same Base created by declarative_base()


class BaseModel(Base):
    """Abstract base adding audit timestamps to every table."""

    __abstract__ = True

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    # Bumped on every write; admin edits may use it as an optimistic-lock token
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
