"""Schemas for the model catalogue endpoint."""
from datetime import datetime
from typing import List, Optional

from .threads import CamelModel


class ModelInfo(CamelModel):
    id: str
    provider: str
    display_name: str
    description: str
    context_window: int
    category: Optional[str] = None
    available: bool = False


class ModelListResponse(CamelModel):
    models: List[ModelInfo]
    providers: List[str]
    default_model_id: str
    # True when the gateway could not be reached and the built-in list is served
    fallback: bool = False
    fetched_at: Optional[datetime] = None
