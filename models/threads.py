"""Thread model for conversation management."""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Text, Integer
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Thread(Base):
    """
    SQLAlchemy model for conversation threads.
    
    Each thread belongs to one owner and holds its messages in append order.
    Deleting a thread deletes its messages.
    """
    __tablename__ = "threads"
    
    # Insertion sequence, used to break ties between equal updated_at values
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid4()), index=True)
    owner_id = Column(String, nullable=False, index=True)
    title = Column(String(255), nullable=True, default="New Chat")
    thread_metadata = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    
    messages = relationship(
        "Message",
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )
