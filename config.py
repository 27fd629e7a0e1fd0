"""Application settings resolved once at startup."""
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PROVIDER_FAMILIES = ("openai", "anthropic", "google")

# Default environment variable names per provider family: (api key, base url)
DEFAULT_PROVIDER_ENV_VARS = {
    "openai": ("OPENAI_API_KEY", "OPENAI_BASE_URL"),
    "anthropic": ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL"),
    "google": ("GEMINI_API_KEY", "GOOGLE_GEMINI_BASE_URL"),
}

# The gateway lists Google models under "gemini"
GATEWAY_ALIASES = {"google": "gemini"}

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Be concise, accurate, and friendly. "
    "Provide clear and informative responses."
)


@dataclass(frozen=True)
class ProviderCredentials:
    """API key and base URL for one provider family, plus where they came from."""
    family: str
    api_key_var: str
    base_url_var: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


class Settings(BaseSettings):
    app_name: str = "LangGraph Chat Relay"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./chat-memory.db"
    database_auth_token: Optional[str] = None

    default_model_id: str = "gpt-4o-mini"
    default_owner_id: str = "default-user"
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    default_temperature: float = 0.7
    max_tokens: int = 4096
    memory_last_messages: int = Field(default=10, ge=1)

    allowed_origins: str = "*"

    # JSON document that renames the provider env vars, e.g.
    # {"providers": {"openai": {"token_env_var": "X", "url_env_var": "Y"}}}
    ai_gateway: Optional[str] = None

    # Providers API listing the models the gateway serves; unset to always use the fallback list
    models_gateway_url: Optional[str] = "https://api.netlify.com/api/v1/ai-gateway/providers"
    models_cache_seconds: int = 300
    models_fetch_timeout: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def origins(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def gateway_config(self) -> Dict[str, Dict[str, str]]:
        """Parse the AI_GATEWAY document into a per-family mapping."""
        if not self.ai_gateway:
            return {}
        try:
            parsed = json.loads(self.ai_gateway)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse AI_GATEWAY config: {e}")
            return {}
        providers = parsed.get("providers") if isinstance(parsed, dict) else None
        return providers if isinstance(providers, dict) else {}

    def provider_credentials(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, ProviderCredentials]:
        """Resolve credentials for every provider family from the environment."""
        environ = os.environ if environ is None else environ
        gateway = self.gateway_config()
        resolved = {}

        for family in PROVIDER_FAMILIES:
            key_var, url_var = DEFAULT_PROVIDER_ENV_VARS[family]
            overrides = gateway.get(family) or gateway.get(GATEWAY_ALIASES.get(family, "")) or {}
            if not isinstance(overrides, dict):
                overrides = {}
            key_var = overrides.get("token_env_var") or key_var
            url_var = overrides.get("url_env_var") or url_var

            resolved[family] = ProviderCredentials(
                family=family,
                api_key_var=key_var,
                base_url_var=url_var,
                api_key=environ.get(key_var) or None,
                base_url=environ.get(url_var) or None,
            )

        return resolved
