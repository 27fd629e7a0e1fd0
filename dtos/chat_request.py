from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional

class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    # message and thread_id are checked by the relay so a missing field is a 400, not a 422
    message: Optional[str] = None
    thread_id: Optional[str] = None
    owner_id: Optional[str] = None
    model_id: Optional[str] = None
    system_prompt: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature override")
    new_conversation: bool = Field(default=False, description="Create a thread instead of sending a message")
