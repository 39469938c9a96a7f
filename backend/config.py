"""
Application configuration with Docker secrets support.

Secrets are read using the _read_secret() pattern:
  1. Direct env var (e.g., LLM_API_KEY)
  2. File-based env var (e.g., LLM_API_KEY_FILE → reads file path)
  3. Raises ValueError if neither is set
"""

import os
import logging

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_TARGET_BYTES = 2 * 1024 * 1024


def _read_secret(env_var: str, file_env_var: str | None = None) -> str:
    """Read a secret from env var or Docker secrets file.

    Args:
        env_var: Direct environment variable name (e.g., LLM_API_KEY)
        file_env_var: File path env var name (e.g., LLM_API_KEY_FILE).
                      If None, defaults to env_var + '_FILE'.

    Returns:
        The secret value.

    Raises:
        ValueError: If neither source provides a value.
    """
    if file_env_var is None:
        file_env_var = f"{env_var}_FILE"

    value = os.environ.get(env_var)
    if value:
        return value

    file_path = os.environ.get(file_env_var)
    if file_path:
        try:
            with open(file_path, "r") as f:
                value = f.read().strip()
            if value:
                return value
        except FileNotFoundError:
            logger.error(f"Secret file not found: {file_path} (from {file_env_var})")
        except PermissionError:
            logger.error(f"Permission denied reading: {file_path} (from {file_env_var})")

    raise ValueError(
        f"Secret not configured. Set {env_var} env var or {file_env_var} pointing to a file."
    )


class Settings:
    """Application settings loaded from environment and Docker secrets."""

    def __init__(self):
        # Database
        self.database_url = self._build_database_url()

        # Secrets (loaded lazily on first access via properties)
        self._llm_api_key: str | None = None
        self._supabase_jwt_secret: str | None = None
        self._supabase_service_role_key: str | None = None

        # LLM gateway (OpenAI-compatible chat completions)
        self.llm_base_url = os.environ.get("LLM_BASE_URL", "https://ai.gateway.lovable.dev/v1")
        self.llm_model = os.environ.get("LLM_MODEL", "google/gemini-3-flash-preview")
        self.llm_timeout = float(os.environ.get("LLM_TIMEOUT_SECONDS", "600"))

        # Backend-as-a-service (auth tokens, object storage, functions)
        self.supabase_url = os.environ.get("SUPABASE_URL", "http://localhost:54321").rstrip("/")

        # Image pipeline
        self.image_target_bytes = int(
            os.environ.get("IMAGE_TARGET_BYTES", str(DEFAULT_IMAGE_TARGET_BYTES))
        )

        self.cors_allow_origins = [
            origin.strip()
            for origin in os.environ.get("CORS_ALLOW_ORIGINS", "*").split(",")
            if origin.strip()
        ]

    def _build_database_url(self) -> str:
        """Build async database URL with password from secrets."""
        base_url = os.environ.get(
            "DATABASE_URL", "postgresql+asyncpg://redpaw@postgres:5432/redpaw"
        )
        try:
            password = _read_secret("POSTGRES_PASSWORD")
            # Insert password into URL: postgresql+asyncpg://user@host → user:pass@host
            if "://" in base_url and "@" in base_url:
                scheme_user, rest = base_url.split("@", 1)
                if ":" not in scheme_user.split("://")[1]:
                    base_url = f"{scheme_user}:{password}@{rest}"
        except ValueError:
            logger.warning("POSTGRES_PASSWORD not set, using DATABASE_URL as-is")
        return base_url

    @property
    def llm_api_key(self) -> str:
        if self._llm_api_key is None:
            self._llm_api_key = _read_secret("LLM_API_KEY")
        return self._llm_api_key

    @property
    def supabase_jwt_secret(self) -> str:
        if self._supabase_jwt_secret is None:
            self._supabase_jwt_secret = _read_secret("SUPABASE_JWT_SECRET")
        return self._supabase_jwt_secret

    @property
    def supabase_service_role_key(self) -> str:
        if self._supabase_service_role_key is None:
            self._supabase_service_role_key = _read_secret("SUPABASE_SERVICE_ROLE_KEY")
        return self._supabase_service_role_key


settings = Settings()
