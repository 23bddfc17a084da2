"""
HERA Universal API - Configuration

Single source of truth for runtime configuration. Values come from the
environment with an optional env file (``ENV_FILE``, default ``.env``).

Required:
  SUPABASE_URL                  - Supabase project REST URL
  SUPABASE_SERVICE_ROLE_KEY     - Service role JWT used for every RPC call

Optional:
  SUPABASE_JWT_SECRET           - HS256 secret for user bearer tokens
  HERA_API_KEY                  - API key accepted in the X-API-Key header
  ENVIRONMENT                   - dev | staging | prod (default: dev)
  LOG_LEVEL                     - DEBUG | INFO | WARNING | ERROR (default: INFO)
  HERA_CORS_ORIGINS             - Comma or space separated CORS origins
  HOST / PORT                   - Server bind address
  RPC_TIMEOUT_SECONDS           - httpx timeout for RPC calls
  RPC_MAX_ATTEMPTS              - Attempts for connection-level RPC failures
  MAX_BATCH_SIZE                - Upper bound on batch request sizes
  PLATFORM_ORGANIZATION_ID      - Organization refused for business calls

Usage:
    from hera_api.config import get_settings

    settings = get_settings()
    print(settings.supabase_url)
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PLATFORM_ORG_ID = "00000000-0000-0000-0000-000000000000"


class Settings(BaseSettings):
    """
    Application settings.

    Loads from environment variables with fallback to the env file named
    by ENV_FILE. Field names are the canonical uppercase variable names;
    lowercase properties are provided for call sites.
    """

    model_config = SettingsConfigDict(
        env_file=os.environ.get("ENV_FILE", ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # =========================================================================
    # SUPABASE
    # =========================================================================

    SUPABASE_URL: str = Field(..., description="Supabase project REST URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(
        ...,
        min_length=100,
        description="Supabase service role JWT key",
    )
    SUPABASE_JWT_SECRET: str | None = Field(
        default=None,
        description="HS256 secret used to verify user JWTs",
    )

    # =========================================================================
    # ENVIRONMENT CONTROL
    # =========================================================================

    ENVIRONMENT: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # =========================================================================
    # API AUTHENTICATION
    # =========================================================================

    HERA_API_KEY: str | None = Field(
        default=None,
        description="API key for X-API-Key header authentication",
    )

    # =========================================================================
    # SERVER
    # =========================================================================

    HERA_CORS_ORIGINS: str | None = Field(
        default=None,
        description="Comma-separated CORS origins",
    )
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8080, description="Server port")

    # =========================================================================
    # RPC GATEWAY
    # =========================================================================

    RPC_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        description="httpx timeout for Supabase RPC calls",
    )
    RPC_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for RPC calls that failed to connect",
    )
    MAX_BATCH_SIZE: int = Field(
        default=500,
        ge=1,
        description="Maximum number of items accepted in a batch request",
    )
    PLATFORM_ORGANIZATION_ID: str = Field(
        default=PLATFORM_ORG_ID,
        description="Platform organization that business calls may not target",
    )

    # =========================================================================
    # VALIDATION & NORMALIZATION
    # =========================================================================

    @model_validator(mode="before")
    @classmethod
    def _normalize_values(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Strip quotes/whitespace and normalize ENVIRONMENT and LOG_LEVEL."""
        for key, value in list(values.items()):
            if isinstance(value, str):
                values[key] = value.strip().strip('"').strip("'").strip()

        env_key = None
        for k in ("ENVIRONMENT", "environment"):
            if k in values:
                env_key = k
                break
        if env_key:
            raw = str(values[env_key]).lower().strip()
            if raw == "production":
                logger.warning("ENVIRONMENT='production' is deprecated; use 'prod'. Normalizing.")
                values[env_key] = "prod"
            elif raw == "development":
                logger.warning("ENVIRONMENT='development' is deprecated; use 'dev'. Normalizing.")
                values[env_key] = "dev"
            elif raw not in ("dev", "staging", "prod"):
                raise ValueError(
                    f"ENVIRONMENT='{raw}' is invalid. Must be one of: dev, staging, prod"
                )
            else:
                values[env_key] = raw

        for k in ("LOG_LEVEL", "log_level"):
            if isinstance(values.get(k), str):
                values[k] = values[k].upper()

        return values

    # =========================================================================
    # PROPERTY ALIASES
    # =========================================================================

    @property
    def supabase_url(self) -> str:
        return self.SUPABASE_URL

    @property
    def supabase_service_role_key(self) -> str:
        return self.SUPABASE_SERVICE_ROLE_KEY

    @property
    def supabase_jwt_secret(self) -> str | None:
        return self.SUPABASE_JWT_SECRET

    @property
    def hera_api_key(self) -> str | None:
        return self.HERA_API_KEY

    @property
    def environment(self) -> Literal["dev", "staging", "prod"]:
        return self.ENVIRONMENT

    @property
    def log_level(self) -> str:
        return self.LOG_LEVEL

    @property
    def host(self) -> str:
        return self.HOST

    @property
    def port(self) -> int:
        return self.PORT

    @property
    def platform_organization_id(self) -> str:
        return self.PLATFORM_ORGANIZATION_ID.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "prod"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.ENVIRONMENT == "dev"

    # =========================================================================
    # CORS HELPERS
    # =========================================================================

    @property
    def cors_allowed_origins(self) -> list[str]:
        """Parse HERA_CORS_ORIGINS into a list."""
        if self.HERA_CORS_ORIGINS:
            raw = self.HERA_CORS_ORIGINS.replace(",", " ")
            origins = []
            for o in raw.split():
                o = o.strip().rstrip("/")
                if o and o.startswith("http"):
                    origins.append(o)
            if origins:
                return origins
        return ["http://localhost:3000", "http://localhost:5173"]


# =========================================================================
# SINGLETON & FACTORY
# =========================================================================


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()  # type: ignore[call-arg]


def reset_settings() -> None:
    """Clear the cached settings (for testing)."""
    get_settings.cache_clear()


# =========================================================================
# LOGGING CONFIGURATION
# =========================================================================


def configure_logging(settings: Settings | None = None) -> None:
    """
    Configure application logging based on settings.

    In production, uses structured JSON logging for observability.
    In development, uses colored console output.
    """
    from .core.logging import configure_structured_logging

    if settings is None:
        settings = get_settings()

    configure_structured_logging(
        level=settings.LOG_LEVEL,
        json_output=settings.is_production,
        service_name="hera-api",
    )

    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)


# =========================================================================
# DIAGNOSTIC HELPERS
# =========================================================================

SECRET_FIELDS = frozenset(
    {
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_JWT_SECRET",
        "HERA_API_KEY",
    }
)


def print_effective_config(redact_secrets: bool = True) -> dict[str, Any]:
    """
    Return the effective configuration (for diagnostics).

    Args:
        redact_secrets: If True, redact sensitive values

    Returns:
        Dict of effective configuration values
    """
    settings = get_settings()

    config: dict[str, Any] = {}
    for field_name in Settings.model_fields:
        value = getattr(settings, field_name, None)
        if redact_secrets and field_name.upper() in SECRET_FIELDS:
            config[field_name] = f"***SET*** (len={len(str(value))})" if value else None
        else:
            config[field_name] = value

    config["_computed"] = {
        "is_production": settings.is_production,
        "cors_allowed_origins": settings.cors_allowed_origins,
    }
    return config


# =========================================================================
# STARTUP VALIDATION
# =========================================================================

REQUIRED_ENV_VARS = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
]

RECOMMENDED_PROD_VARS = [
    "HERA_API_KEY",
    "SUPABASE_JWT_SECRET",
    "HERA_CORS_ORIGINS",
]


def validate_required_env(fail_fast: bool = True) -> dict[str, Any]:
    """
    Validate required environment variables and log a startup report.

    Args:
        fail_fast: If True, raise an exception if required vars are missing

    Returns:
        Dict with ``valid``, ``present``, ``missing`` and ``warnings`` keys.

    Raises:
        RuntimeError: If fail_fast=True and required vars are missing
    """
    result: dict[str, Any] = {
        "valid": True,
        "present": [],
        "missing": [],
        "warnings": [],
    }

    for var in REQUIRED_ENV_VARS:
        value = os.environ.get(var)
        if value and value.strip():
            result["present"].append(var)
        else:
            result["missing"].append(var)

    env = os.environ.get("ENVIRONMENT", "dev").lower()
    if env in ("prod", "production"):
        for var in RECOMMENDED_PROD_VARS:
            value = os.environ.get(var)
            if not value or not value.strip():
                result["warnings"].append(f"{var} not set (recommended for production)")

    if result["missing"]:
        result["valid"] = False

    logger.info("=" * 60)
    logger.info("HERA API STARTUP CONFIGURATION REPORT")
    logger.info("=" * 60)
    logger.info(f"Environment: {env.upper()}")

    if result["present"]:
        logger.info(f"Present: {', '.join(result['present'])}")

    if result["missing"]:
        logger.error(f"MISSING: {', '.join(result['missing'])}")

    for warning in result["warnings"]:
        logger.warning(warning)

    logger.info("=" * 60)

    if fail_fast and not result["valid"]:
        missing_str = ", ".join(result["missing"])
        raise RuntimeError(
            f"Missing required environment variables: {missing_str}. "
            f"Set these in your environment or .env file."
        )

    return result
