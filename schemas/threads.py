"""Pydantic schemas for thread-related requests and responses."""
from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema that speaks camelCase on the wire and accepts snake_case too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ThreadCreate(CamelModel):
    """Schema for creating a thread."""
    owner_id: Optional[str] = None
    title: Optional[str] = Field(default="New Chat", max_length=255)
    metadata: Optional[Dict[str, Any]] = None


class ThreadUpdate(CamelModel):
    """Schema for updating a thread."""
    title: Optional[str] = Field(default=None, max_length=255)
    metadata: Optional[Dict[str, Any]] = None


class ThreadResponse(CamelModel):
    """Schema for thread responses."""
    id: str
    owner_id: str
    title: Optional[str]
    metadata: Optional[Dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class MessageResponse(CamelModel):
    """A message with its content normalized to text."""
    role: str
    content: str


class ThreadEnvelope(CamelModel):
    thread: ThreadResponse


class ThreadListResponse(CamelModel):
    threads: List[ThreadResponse]


class ThreadDetailResponse(CamelModel):
    thread: ThreadResponse
    messages: List[MessageResponse]


class DeleteResponse(CamelModel):
    success: bool = True
