from .threads import ThreadService
from .providers import ProviderRegistry, ModelBinding, resolve_model
from .catalog import ModelCatalog, list_models
from .chat import ChatRelay

__all__ = ["ThreadService", "ProviderRegistry", "ModelBinding", "resolve_model", "ModelCatalog", "list_models", "ChatRelay"]
