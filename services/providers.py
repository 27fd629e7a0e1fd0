"""Model id to provider family resolution and the provider client registry."""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from langchain.chat_models import init_chat_model
from langchain_core.runnables import Runnable

from config import ProviderCredentials
from exceptions import ConfigurationError, UnknownModelError

logger = logging.getLogger(__name__)

# Provider names as understood by init_chat_model
CHAT_MODEL_PROVIDERS = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google": "google_genai",
}

PROVIDER_LABELS = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "google": "Google/Gemini",
}


@dataclass(frozen=True)
class ModelBinding:
    """A model id bound to the provider family that serves it."""
    model_id: str
    family: str


def infer_provider_family(model_id: str) -> Optional[str]:
    """Map a model id onto a provider family by prefix, or None."""
    if model_id.startswith("gpt-") or model_id.startswith("o") or "codex" in model_id:
        return "openai"
    if model_id.startswith("claude-"):
        return "anthropic"
    if model_id.startswith("gemini-"):
        return "google"
    return None


def resolve_model(model_id: str) -> ModelBinding:
    """Bind a model id to its provider family or raise UnknownModelError."""
    family = infer_provider_family(model_id or "")
    if family is None:
        logger.error(f"Cannot infer provider from model ID: {model_id}")
        raise UnknownModelError(model_id)
    return ModelBinding(model_id=model_id, family=family)


class ProviderRegistry:
    """
    Process-wide cache of provider clients, keyed by provider family.

    Clients are created lazily on first use from credentials resolved at
    startup. Each client is a configurable chat model; the model id,
    temperature and token limit are bound per request.
    """

    def __init__(self, credentials: Dict[str, ProviderCredentials]):
        self.credentials = credentials
        self._clients: Dict[str, Runnable] = {}
        self._lock = threading.Lock()

    def require_credentials(self, family: str) -> ProviderCredentials:
        """Return the credentials for a family or raise ConfigurationError."""
        creds = self.credentials.get(family)
        if creds is None:
            raise ConfigurationError(f"No configuration for provider family: {family}")
        if not creds.api_key:
            raise ConfigurationError(
                f"{PROVIDER_LABELS.get(family, family)} API key not found. "
                f"Expected {creds.api_key_var} to be set.",
                missing_key=creds.api_key_var,
            )
        return creds

    def create_client(self, family: str, creds: ProviderCredentials) -> Runnable:
        """Build the configurable chat model for one provider family."""
        kwargs = {"api_key": creds.api_key}
        if creds.base_url:
            kwargs["base_url"] = creds.base_url

        return init_chat_model(
            model_provider=CHAT_MODEL_PROVIDERS[family],
            configurable_fields=("model", "temperature", "max_tokens"),
            **kwargs
        )

    def get_client(self, family: str) -> Runnable:
        """Get or create the client for a provider family."""
        client = self._clients.get(family)
        if client is not None:
            return client

        creds = self.require_credentials(family)
        with self._lock:
            client = self._clients.get(family)
            if client is None:
                client = self.create_client(family, creds)
                self._clients[family] = client
                logger.info(f"Initialized {family} provider client")
        return client

    def chat_model(self, binding: ModelBinding, temperature: float, max_tokens: int) -> Runnable:
        """Return a chat model bound to a model id and sampling options."""
        client = self.get_client(binding.family)
        return client.with_config(
            configurable={
                "model": binding.model_id,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
