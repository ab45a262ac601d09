"""
Application Configuration
-------------------------
Loads settings from environment variables using Pydantic.

EXPLANATION FOR BEGINNERS:
- Pydantic validates that environment variables have the correct types
- Settings are loaded once at startup and cached
- Business logic never reads os.environ directly: values from here are
  passed into services when they are constructed
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    WHAT THIS DOES:
    - Reads .env file automatically
    - Validates all settings on startup
    - Provides type-safe access to configuration
    """

    # -------------------------------------------------------------------------
    # ICS SOURCE
    # -------------------------------------------------------------------------
    ICS_URL: Optional[str] = Field(
        default=None,
        description="Default calendar feed used when ?ics= is not given"
    )
    ICS_URL_MAX_LENGTH: int = Field(
        default=1000,
        description="Longest source URL the proxy accepts"
    )
    ICS_FETCH_TIMEOUT: Optional[float] = Field(
        default=None,
        description="Upstream fetch timeout in seconds (None = wait forever)"
    )
    DEFAULT_MAX_RESULTS: int = Field(
        default=200,
        description="Result cap when maxResults is missing or not a number"
    )

    # -------------------------------------------------------------------------
    # RESPONSE CACHING
    # -------------------------------------------------------------------------
    CACHE_S_MAXAGE: int = Field(default=120, description="Shared cache fresh window (seconds)")
    CACHE_STALE_WHILE_REVALIDATE: int = Field(
        default=600,
        description="How long a shared cache may serve stale data while refreshing"
    )

    # -------------------------------------------------------------------------
    # BACKEND API
    # -------------------------------------------------------------------------
    BACKEND_HOST: str = Field(default="0.0.0.0")
    BACKEND_PORT: int = Field(default=8000)
    BACKEND_RELOAD: bool = Field(default=True, description="Auto-reload on code changes")

    # CORS (Cross-Origin Resource Sharing)
    # Only used by CORSMiddleware for preflight (OPTIONS) requests.
    # GET /api/ics always answers with Access-Control-Allow-Origin: *
    CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of origins allowed in preflight requests"
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Convert comma-separated CORS_ORIGINS to a list"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENVIRONMENT: str = Field(default="development", description="development or production")

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.ENVIRONMENT.lower() == "production"

    # -------------------------------------------------------------------------
    # COMPUTED PROPERTIES
    # -------------------------------------------------------------------------
    @property
    def cache_control_header(self) -> str:
        """
        Cache-Control value for successful calendar responses.

        EXAMPLE:
        "s-maxage=120, stale-while-revalidate=600"
        """
        return (
            f"s-maxage={self.CACHE_S_MAXAGE}, "
            f"stale-while-revalidate={self.CACHE_STALE_WHILE_REVALIDATE}"
        )

    # -------------------------------------------------------------------------
    # PYDANTIC CONFIG
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",  # Automatically load .env file
        env_file_encoding="utf-8",
        case_sensitive=True,  # ICS_URL != ics_url
    )


# ============================================================================
# GLOBAL SETTINGS INSTANCE
# ============================================================================
# This is loaded once at startup and reused everywhere
settings = Settings()


# ============================================================================
# HELPER FUNCTION TO PRINT CONFIG (FOR DEBUGGING)
# ============================================================================
def print_config():
    """Print current configuration (feed URLs can embed private tokens)"""
    print("\n" + "="*70)
    print("APPLICATION CONFIGURATION")
    print("="*70)

    for field, value in settings.model_dump().items():
        # Google "secret address" feeds carry the key in the URL itself
        if field == "ICS_URL" and value:
            display_value = value.split("?")[0][:40] + "...***HIDDEN***"
        else:
            display_value = value

        print(f"{field:30} = {display_value}")

    print("="*70 + "\n")


# ============================================================================
# USAGE EXAMPLE
# ============================================================================
if __name__ == "__main__":
    # Run this file directly to test configuration
    print_config()

    print(f"Default ICS URL configured? {settings.ICS_URL is not None}")
    print(f"Is production? {settings.is_production}")
    print(f"Cache-Control: {settings.cache_control_header}")
