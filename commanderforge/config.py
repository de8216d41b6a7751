from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "CommanderForge"
    debug: bool = False

    # Empty key disables every LLM stage; generation then fails fast
    # and scanning/replacement fall back to deterministic rules.
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"

    generation_max_tokens: int = 4000
    validation_max_tokens: int = 3000
    replacement_max_tokens: int = 2500

    scryfall_base_url: str = "https://api.scryfall.com"
    scryfall_user_agent: str = "CommanderForge/1.0"

    http_timeout: float = 30.0


settings = Settings()


# =============================================================================
# CARD DATA SOURCE LIMITS
# =============================================================================

# Scryfall's /cards/collection endpoint accepts at most 75 identifiers
SCRYFALL_BATCH_SIZE = 75

# Delay between per-card lookups (Scryfall asks for 50-100ms between requests)
SCRYFALL_REQUEST_DELAY = 0.1


# =============================================================================
# GENERATION QUALITY FLOOR
# =============================================================================

# Fewer surviving cards than this is not a usable deck skeleton
MIN_GENERATED_CARDS = 50
