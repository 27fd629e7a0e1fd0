"""Message model: one role-tagged turn within a thread."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from .threads import Base, utcnow


class Message(Base):
    """
    SQLAlchemy model for thread messages.
    
    The autoincrement id is the append order. Content is stored as JSON so
    structured payloads survive; readers normalize it to text.
    """
    __tablename__ = "messages"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(String(36), ForeignKey("threads.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    content = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    
    thread = relationship("Thread", back_populates="messages")
