"""Known models and their display metadata."""
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx

from config import GATEWAY_ALIASES, PROVIDER_FAMILIES, ProviderCredentials
from schemas.models import ModelInfo
from services.providers import infer_provider_family

logger = logging.getLogger(__name__)

# Used when the model list cannot be discovered from a gateway
FALLBACK_MODELS = [
    {"id": "gpt-4o-mini", "provider": "openai", "display_name": "GPT-4 Omni Mini"},
    {"id": "gpt-4o", "provider": "openai", "display_name": "GPT-4 Omni"},
    {"id": "claude-sonnet-4-5-20250929", "provider": "anthropic", "display_name": "Claude Sonnet 4.5"},
    {"id": "claude-3-5-haiku-20241022", "provider": "anthropic", "display_name": "Claude 3.5 Haiku"},
    {"id": "gemini-2.5-flash", "provider": "google", "display_name": "Gemini 2.5 Flash"},
]

# Metadata by model family pattern; the longest matching pattern wins
METADATA_PATTERNS = {
    "gpt-5-pro": {"description": "Most advanced GPT-5 model with enhanced reasoning", "context_window": 200000, "category": "pro"},
    "gpt-5": {"description": "Latest generation GPT-5 model", "context_window": 200000, "category": "standard"},
    "gpt-4o": {"description": "Multimodal GPT-4 Omni model", "context_window": 128000, "category": "multimodal"},
    "gpt-4o-mini": {"description": "Fast, cost-effective GPT-4 variant", "context_window": 128000, "category": "fast"},
    "o3": {"description": "Advanced reasoning model for complex tasks", "context_window": 200000, "category": "reasoning"},
    "o3-mini": {"description": "Efficient reasoning model", "context_window": 200000, "category": "reasoning"},
    "o4-mini": {"description": "Next-gen reasoning model", "context_window": 200000, "category": "reasoning"},
    "claude-opus": {"description": "Most powerful Claude model for complex tasks", "context_window": 200000, "category": "pro"},
    "claude-sonnet": {"description": "Balanced Claude model with strong reasoning", "context_window": 200000, "category": "standard"},
    "claude-haiku": {"description": "Fast, efficient Claude model", "context_window": 200000, "category": "fast"},
    "claude-3-5-haiku": {"description": "Fast, efficient Claude model", "context_window": 200000, "category": "fast"},
    "gemini-2.5-pro": {"description": "Advanced multimodal understanding with massive context", "context_window": 1000000, "category": "pro"},
    "gemini-2.5-flash": {"description": "Fast, efficient Gemini 2.5 variant", "context_window": 1000000, "category": "fast"},
    "gemini-2.0-flash": {"description": "Fast Gemini 2.0 model", "context_window": 1000000, "category": "fast"},
}

DEFAULT_METADATA = {"description": "AI language model", "context_window": 128000, "category": None}


def get_model_metadata(model_id: str) -> Dict[str, object]:
    """Look up display metadata for a model id."""
    matches = [pattern for pattern in METADATA_PATTERNS if model_id.startswith(pattern)]
    if not matches:
        return dict(DEFAULT_METADATA)
    return dict(METADATA_PATTERNS[max(matches, key=len)])


def format_model_name(model_id: str, provider: Optional[str] = None) -> str:
    """Turn a model id into a display name."""
    provider = provider or infer_provider_family(model_id)
    name = re.sub(r"-\d{8}$", "", model_id)
    name = re.sub(r"-latest$", "", name)

    if provider == "openai":
        return name.upper().replace("-", " ")
    if provider == "anthropic":
        return " ".join(word[:1].upper() + word[1:] for word in name.split("-"))
    if provider == "google":
        words = name.split("-")
        return " ".join([words[0][:1].upper() + words[0][1:]] + words[1:])
    return name


def transform_gateway_models(data: Dict[str, Any]) -> List[Dict[str, str]]:
    """
    Turn a gateway providers document into catalogue entries.

    The gateway lists models per provider key, e.g.
    {"providers": {"openai": {"models": ["gpt-4o", ...]}, "gemini": {...}}}.
    Provider keys outside the known families are skipped. Raises ValueError
    when the document does not have that shape.
    """
    providers = data.get("providers") if isinstance(data, dict) else None
    if not isinstance(providers, dict):
        raise ValueError("Gateway response has no providers mapping")

    entries = []
    for family in PROVIDER_FAMILIES:
        provider = providers.get(GATEWAY_ALIASES.get(family, family)) or providers.get(family)
        if not provider:
            continue
        model_ids = provider.get("models") if isinstance(provider, dict) else None
        if not isinstance(model_ids, list):
            raise ValueError(f"Gateway provider {family} has no models list")
        for model_id in model_ids:
            if isinstance(model_id, str) and model_id:
                entries.append({
                    "id": model_id,
                    "provider": family,
                    "display_name": format_model_name(model_id, family),
                })
    return entries


class ModelCatalog:
    """
    Model list discovered from the gateway providers API, cached for a while.

    When the gateway is not configured, unreachable, or returns something
    unusable, the built-in FALLBACK_MODELS are served instead. Fallback
    results are not cached, so the next request tries the gateway again.
    """

    def __init__(
        self,
        gateway_url: Optional[str],
        cache_seconds: float = 300,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway_url = gateway_url
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self.transport = transport
        self.clock = clock
        self._cached: Optional[List[Dict[str, str]]] = None
        self._cached_at = 0.0
        self._fetched_at: Optional[datetime] = None

    async def fetch_gateway_models(self) -> Optional[List[Dict[str, str]]]:
        """Fetch and transform the gateway model list. Returns None on any failure."""
        if not self.gateway_url:
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.gateway_url)

            if response.status_code != httpx.codes.OK:
                logger.error(f"Failed to fetch models from AI Gateway: {response.status_code}")
                return None

            entries = transform_gateway_models(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching AI Gateway models: {e}")
            return None

        if not entries:
            logger.warning("AI Gateway returned no models")
            return None
        return entries

    async def get_entries(self) -> Tuple[List[Dict[str, str]], bool, Optional[datetime]]:
        """Return (entries, fallback, fetched_at), refreshing the cache when it has expired."""
        if self._cached is not None and self.clock() - self._cached_at < self.cache_seconds:
            return self._cached, False, self._fetched_at

        entries = await self.fetch_gateway_models()
        if entries is None:
            return list(FALLBACK_MODELS), True, None

        self._cached = entries
        self._cached_at = self.clock()
        self._fetched_at = datetime.now(timezone.utc)
        logger.info(f"Cached {len(entries)} models from AI Gateway")
        return entries, False, self._fetched_at


def list_models(
    credentials: Dict[str, ProviderCredentials],
    extra_model_ids: Iterable[str] = (),
    entries: Optional[List[Dict[str, str]]] = None,
) -> List[ModelInfo]:
    """Catalogue entries (the fallback list by default) plus any extra ids, annotated with provider availability."""
    entries = list(FALLBACK_MODELS if entries is None else entries)
    known = {entry["id"] for entry in entries}
    for model_id in extra_model_ids:
        provider = infer_provider_family(model_id)
        if model_id in known or provider is None:
            continue
        entries.append({"id": model_id, "provider": provider, "display_name": format_model_name(model_id, provider)})
        known.add(model_id)

    models = []
    for entry in entries:
        creds = credentials.get(entry["provider"])
        models.append(ModelInfo(
            id=entry["id"],
            provider=entry["provider"],
            display_name=entry["display_name"],
            available=bool(creds and creds.configured),
            **get_model_metadata(entry["id"])
        ))
    return models
