from .threads import (
    CamelModel, ThreadCreate, ThreadUpdate, ThreadResponse, MessageResponse,
    ThreadEnvelope, ThreadListResponse, ThreadDetailResponse, DeleteResponse,
)
from .models import ModelInfo, ModelListResponse

__all__ = ["CamelModel", "ThreadCreate", "ThreadUpdate", "ThreadResponse", "MessageResponse",
           "ThreadEnvelope", "ThreadListResponse", "ThreadDetailResponse", "DeleteResponse",
           "ModelInfo", "ModelListResponse"]
