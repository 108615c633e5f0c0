"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.

Two layers:
- Settings: process-level concerns (paths, provider credentials, chain order)
- ReflectionConfig: engine tuning loaded from config/reflection_config.yaml
  (history caps, grounding policy, input bounds, similarity thresholds)
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path("config"),
        description="Directory containing YAML configuration files",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for database and other data files"
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/reflection.db"), description="Path to SQLite database file"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # Providers are attempted strictly in chain order, once each per request.
    # Defaults for each provider (model, temperature, max_tokens) live in
    # src/llm/client.py. Set LLM_PROVIDER_CHAIN=openai,anthropic to reorder.

    llm_provider_chain: str = Field(
        default="anthropic,openai,deepseek",
        description="Comma-separated provider identities in priority order",
    )
    llm_provider_timeout: float = Field(
        default=25.0,
        gt=0,
        le=120,
        description="Per-provider attempt timeout in seconds",
    )

    # Optional model overrides (defaults defined in client.py)
    llm_anthropic_model: Optional[str] = Field(
        default=None, description="Override Anthropic model"
    )
    llm_openai_model: Optional[str] = Field(
        default=None, description="Override OpenAI model"
    )
    llm_deepseek_model: Optional[str] = Field(
        default=None, description="Override DeepSeek model"
    )
    llm_kimi_model: Optional[str] = Field(
        default=None, description="Override Kimi model"
    )

    # API Keys (required for providers in the chain)
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    openai_api_key: Optional[str] = Field(
        default=None, description="OpenAI API key"
    )
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key"
    )
    kimi_api_key: Optional[str] = Field(
        default=None, description="Kimi (Moonshot AI) API key"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    @property
    def provider_chain(self) -> List[str]:
        """Provider identities in priority order, normalized and de-duplicated."""
        chain: List[str] = []
        for raw in self.llm_provider_chain.split(","):
            name = raw.strip().lower()
            if name and name not in chain:
                chain.append(name)
        return chain


# ============================================================================
# Reflection Configuration (from YAML)
# ============================================================================


class HistoryConfig(BaseModel):
    """Bounds on the working memory rebuilt from persisted turns.

    The normalizer takes the last ``assistant_window`` assistant turns,
    reverses them to newest-first and keeps ``assistant_recent`` of those
    before extracting per-field lists.
    """

    assistant_window: int = Field(
        default=30, ge=1, le=200, description="Assistant turns read from history"
    )
    assistant_recent: int = Field(
        default=20, ge=1, le=200, description="Newest assistant turns used for memory"
    )
    max_items: int = Field(
        default=25, ge=1, le=100, description="Cap for questions/reframes/acks/encouragements"
    )
    max_distortions: int = Field(
        default=10, ge=1, le=50, description="Cap for distortion labels"
    )
    conversation_turns: int = Field(
        default=6, ge=0, le=50, description="Raw turns forwarded to the backend"
    )

    @field_validator("assistant_recent")
    @classmethod
    def recent_within_window(cls, v: int, info) -> int:
        """Recent slice cannot exceed the window it is cut from."""
        window = info.data.get("assistant_window")
        if window is not None and v > window:
            return window
        return v


class GroundingConfig(BaseModel):
    """Crisis and grounding-mode policy.

    Keyword tiers are matched as lowercase substrings. Acute matches always
    bypass the generation backend.
    """

    exit_after_turns: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Consecutive stable turns needed to leave grounding",
    )
    acute_keywords: List[str] = Field(
        default_factory=lambda: [
            "kill myself",
            "killing myself",
            "end my life",
            "ending my life",
            "take my own life",
            "want to die",
            "wanna die",
            "suicide",
            "suicidal",
            "self harm",
            "self-harm",
            "hurt myself",
            "cut myself",
            "cutting myself",
            "overdose",
            "better off dead",
            "no reason to live",
            "not worth living",
        ]
    )
    elevated_keywords: List[str] = Field(
        default_factory=lambda: [
            "can't go on",
            "cant go on",
            "can't cope",
            "cant cope",
            "can't breathe",
            "cant breathe",
            "panic attack",
            "panicking",
            "hopeless",
            "falling apart",
            "breaking down",
            "losing it",
            "spiraling",
            "drowning",
            "shutting down",
            "freaking out",
            "all too much",
            "too much to handle",
            "too much for me",
            "overwhelmed",
        ]
    )
    grounding_choice_keywords: List[str] = Field(
        default_factory=lambda: [
            "grounding",
            "comfort",
            "something calming",
            "take a break",
            "step back",
            "pause",
            "breathe",
            "gentle",
            "small thing",
            "tiny step",
            "practical step",
        ]
    )


class InputConfig(BaseModel):
    """Bounds for submitted thoughts."""

    min_length: int = Field(default=1, ge=1)
    max_length: int = Field(default=2000, ge=10, le=20000)


class SimilarityConfig(BaseModel):
    """Near-duplicate detection thresholds."""

    near_duplicate_threshold: float = Field(default=0.62, gt=0.0, le=1.0)


class ReflectionConfig(BaseModel):
    """
    Complete engine configuration loaded from reflection_config.yaml.

    All values have defaults so the engine runs without the file.
    """

    history: HistoryConfig = Field(default_factory=HistoryConfig)
    grounding: GroundingConfig = Field(default_factory=GroundingConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    similarity: SimilarityConfig = Field(default_factory=SimilarityConfig)


def load_reflection_config(config_path: Optional[Path] = None) -> ReflectionConfig:
    """
    Load reflection configuration from YAML file.

    Args:
        config_path: Path to reflection_config.yaml. If None, uses default path.

    Returns:
        ReflectionConfig with validated settings

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        # Default path: config/reflection_config.yaml relative to project root
        project_config = (
            Path(__file__).resolve().parent.parent.parent
            / "config"
            / "reflection_config.yaml"
        )
        cwd_config = Path.cwd() / "config" / "reflection_config.yaml"
        if project_config.exists():
            config_path = project_config
        elif cwd_config.exists():
            config_path = cwd_config
        else:
            return ReflectionConfig()

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return ReflectionConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return ReflectionConfig()

    return ReflectionConfig(**config_data)


# Global settings instance
settings = Settings()

# Global reflection config instance
reflection_config = load_reflection_config()
