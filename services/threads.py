"""Thread service: the session store for threads and their messages."""
from functools import wraps
from typing import Any, Dict, Optional, List
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import desc
import json
import logging

from exceptions import StorageError, ThreadNotFoundError
from models.threads import Thread, utcnow
from models.messages import Message
from schemas.threads import ThreadCreate, ThreadUpdate

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 80


def _storage_operation(func):
    """Roll back and re-raise database failures as StorageError."""
    @wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return func(db, *args, **kwargs)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Session store operation {func.__name__} failed: {e}")
            raise StorageError(f"Storage operation failed: {func.__name__}") from e
    return wrapper


def normalize_content(content: Any) -> str:
    """Render stored message content as display text."""
    if isinstance(content, str):
        return content
    return json.dumps(content)


def derive_title(text: str) -> Optional[str]:
    """Build a short thread title from the first user message."""
    title = " ".join(text.split())
    if not title:
        return None
    if len(title) > TITLE_MAX_LENGTH:
        title = title[:TITLE_MAX_LENGTH - 3].rstrip() + "..."
    return title


def thread_metadata(thread: Thread) -> Optional[Dict[str, Any]]:
    return json.loads(thread.thread_metadata) if thread.thread_metadata else None


class ThreadService:
    """Service class for thread and message persistence."""
    
    @staticmethod
    @_storage_operation
    def create_thread(db: Session, owner_id: str, thread_data: ThreadCreate) -> Thread:
        """Create a new thread for an owner."""
        metadata = dict(thread_data.metadata or {})
        metadata.setdefault("createdAt", utcnow().isoformat())

        db_thread = Thread(
            owner_id=owner_id,
            title=thread_data.title,
            thread_metadata=json.dumps(metadata)
        )
        
        db.add(db_thread)
        db.commit()
        db.refresh(db_thread)
        
        logger.info(f"Created thread {db_thread.id} for owner {owner_id}")
        return db_thread
    
    @staticmethod
    @_storage_operation
    def get_thread(db: Session, thread_id: str, owner_id: Optional[str] = None) -> Optional[Thread]:
        """Retrieve a thread by ID."""
        query = db.query(Thread).filter(Thread.id == thread_id)
        
        if owner_id:
            query = query.filter(Thread.owner_id == owner_id)
            
        return query.first()
    
    @staticmethod
    @_storage_operation
    def get_owner_threads(db: Session, owner_id: str) -> List[Thread]:
        """Retrieve all threads for an owner, most recently active first."""
        return db.query(Thread).filter(
            Thread.owner_id == owner_id
        ).order_by(
            desc(Thread.updated_at),
            desc(Thread.seq)
        ).all()
    
    @staticmethod
    @_storage_operation
    def update_thread(db: Session, thread_id: str, owner_id: str, thread_update: ThreadUpdate) -> Optional[Thread]:
        """Update a thread's title or metadata."""
        thread = db.query(Thread).filter(
            Thread.id == thread_id,
            Thread.owner_id == owner_id
        ).first()
        
        if not thread:
            return None
            
        if thread_update.title is not None:
            thread.title = thread_update.title
            
        if thread_update.metadata is not None:
            thread.thread_metadata = json.dumps(thread_update.metadata)
        
        thread.updated_at = utcnow()
        db.commit()
        db.refresh(thread)
        
        return thread
    
    @staticmethod
    @_storage_operation
    def delete_thread(db: Session, thread_id: str) -> bool:
        """Delete a thread and its messages. Returns False if it did not exist."""
        thread = db.query(Thread).filter(Thread.id == thread_id).first()
        
        if not thread:
            logger.info(f"Delete requested for unknown thread {thread_id}")
            return False
            
        db.delete(thread)
        db.commit()
        
        return True

    @staticmethod
    @_storage_operation
    def append_message(db: Session, thread_id: str, owner_id: str, role: str, content: Any) -> Message:
        """Append a message to a thread and bump its updated_at."""
        thread = db.query(Thread).filter(
            Thread.id == thread_id,
            Thread.owner_id == owner_id
        ).first()

        if not thread:
            raise ThreadNotFoundError(thread_id)

        message = Message(thread_id=thread.id, role=role, content=content)
        db.add(message)

        if role == "user" and thread.title in (None, "", DEFAULT_TITLE):
            title = derive_title(normalize_content(content))
            if title:
                thread.title = title

        thread.updated_at = utcnow()
        db.commit()
        db.refresh(message)

        return message

    @staticmethod
    @_storage_operation
    def get_messages(db: Session, thread_id: str, last: Optional[int] = None) -> List[Message]:
        """Return a thread's messages in append order, optionally only the last N."""
        query = db.query(Message).filter(Message.thread_id == thread_id)

        if last is not None:
            recent = query.order_by(desc(Message.id)).limit(last).all()
            return list(reversed(recent))

        return query.order_by(Message.id).all()
