"""Application settings read from environment variables."""

import os

from urbannest.utils.errors import ConfigError


class AppConfig:
    """Centralized application configuration."""

    SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
    SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
    STORAGE_BUCKET = os.environ.get("STORAGE_BUCKET", "property-images")
    STORAGE_PREFIX = os.environ.get("STORAGE_PREFIX", "listings")
    REALTIME_CHANNEL = os.environ.get("REALTIME_CHANNEL", "public:messages")

    # Listings at or below this monthly rent show under the "Budget" category
    BUDGET_RENT_CEILING = float(os.environ.get("BUDGET_RENT_CEILING", "15000"))

    LLM_PROVIDER = os.environ.get("LLM_PROVIDER", "anthropic").lower()
    LLM_MODEL = os.environ.get("LLM_MODEL", "claude-sonnet-4-20250514")
    USE_LLM_ASSISTANT = os.environ.get("USE_LLM_ASSISTANT", "true").lower() == "true"

    @classmethod
    def supabase_credentials(cls) -> tuple[str, str]:
        """Return (url, key), failing loudly when either is unset."""
        url = os.environ.get("SUPABASE_URL", cls.SUPABASE_URL)
        key = os.environ.get("SUPABASE_ANON_KEY", cls.SUPABASE_ANON_KEY)
        if not url or not key:
            raise ConfigError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        return url, key

    @classmethod
    def llm_api_key(cls, provider: str) -> str:
        env_name = {
            "anthropic": "ANTHROPIC_API_KEY",
            "openai": "OPENAI_API_KEY",
        }.get(provider)
        if env_name is None:
            raise ConfigError(f"Unsupported LLM provider: {provider}")
        api_key = os.environ.get(env_name)
        if not api_key:
            raise ConfigError(f"{env_name} not set")
        return api_key
