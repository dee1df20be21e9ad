"""Configuration loader with Pydantic validation and env var expansion."""

import logging
import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..orchestration.models import GenerationDepth, ResearchMode
from ..settings import (
    ANTHROPIC_DEFAULT_MODEL,
    CHORUS_HOME,
    GEMINI_AUXILIARY_MODEL,
    GEMINI_DEFAULT_MODEL,
    OPENROUTER_DEFAULT_MODEL,
)

logger = logging.getLogger(__name__)

INITIAL_AGENT_SLOTS = 4


class GatewayConfig(BaseModel):
    """Configuration for the model gateway backend."""

    backend: Literal["gemini", "openrouter", "anthropic", "mock"] = "gemini"
    api_key: str | None = None
    base_url: str | None = None
    timeout: float = 120.0


class TemperatureConfig(BaseModel):
    """Sampling temperatures for the agents of a run."""

    model_config = ConfigDict(frozen=True)

    initial: tuple[float, ...] = (0.9,) * INITIAL_AGENT_SLOTS  # One per drafting agent
    refinement: float = Field(default=0.9, ge=0.0, le=1.0)
    synthesizer: float = Field(default=0.9, ge=0.0, le=1.0)

    @field_validator("initial", mode="before")
    @classmethod
    def _broadcast_initial(cls, value):
        if isinstance(value, (int, float)):
            value = [value]
        value = tuple(value)
        if len(value) == 1:
            value = value * INITIAL_AGENT_SLOTS
        if len(value) != INITIAL_AGENT_SLOTS:
            raise ValueError(
                f"initial needs 1 or {INITIAL_AGENT_SLOTS} temperatures, got {len(value)}"
            )
        return value

    @field_validator("initial")
    @classmethod
    def _initial_in_range(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        for temperature in value:
            if not 0.0 <= temperature <= 1.0:
                raise ValueError(f"Temperature {temperature} outside [0, 1]")
        return value

    def for_agent(self, index: int) -> float:
        return self.initial[index]


class GenerationConfig(BaseModel):
    """Settings that shape every run. Captured once per submission."""

    model_config = ConfigDict(frozen=True)

    research_mode: ResearchMode = ResearchMode.OFFLINE
    depth: GenerationDepth = GenerationDepth.DEEP
    model: str = GEMINI_DEFAULT_MODEL
    auxiliary_model: str = GEMINI_AUXILIARY_MODEL  # Critique, search gate, refiner, enrichment
    temperatures: TemperatureConfig = TemperatureConfig()
    self_correction: bool = True
    code_interpreter: bool = True
    long_term_memory: bool = True

    @property
    def uses_search_gate(self) -> bool:
        """Only literal web mode asks for confirmation; deep mode searches directly."""
        return self.research_mode == ResearchMode.WEB and self.depth != GenerationDepth.FAST


class PacingConfig(BaseModel):
    """Minimum stage durations so progress is perceptible in a UI."""

    history_delay: float = Field(default=0.1, ge=0.0)
    min_stage_display: float = Field(default=0.4, ge=0.0)


class EnrichmentConfig(BaseModel):
    """Configuration for post-generation memory and suggestions."""

    max_memories: int = 20
    min_memory_length: int = 10  # Candidates this short or shorter are dropped
    max_suggestions: int = 3
    memory_temperature: float = 0.2


class SessionConfig(BaseModel):
    """Configuration for the chat session control surface."""

    max_history_messages: int = 10
    title_max_chars: int = 40
    draft_debounce: float = 0.5


class StorageConfig(BaseModel):
    """Configuration for conversation, memory and draft persistence."""

    backend: Literal["json", "memory"] = "json"
    path: Path = CHORUS_HOME


class ProfileConfig(BaseModel):
    """Configuration profile containing all component configs."""

    gateway: GatewayConfig = GatewayConfig()
    generation: GenerationConfig = GenerationConfig()
    pacing: PacingConfig = PacingConfig()
    enrichment: EnrichmentConfig = EnrichmentConfig()
    session: SessionConfig = SessionConfig()
    storage: StorageConfig = StorageConfig()


class ConfigFile(BaseModel):
    """Root configuration file structure."""

    profiles: dict[str, ProfileConfig]


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} references in string with environment variables.

    Args:
        value: String potentially containing env var references

    Returns:
        String with env vars expanded
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}]+)\}"

    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return re.sub(pattern, replacer, value)


def expand_env_vars_recursive(data):
    """Recursively expand env vars in nested dict/list structures.

    Args:
        data: Dict, list, or primitive value

    Returns:
        Data structure with all env vars expanded
    """
    if isinstance(data, dict):
        return {k: expand_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [expand_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return expand_env_vars(data)
    else:
        return data


def _drop_unexpanded(data):
    """Treat ``${VAR}`` placeholders whose variable is unset as missing values."""
    if isinstance(data, dict):
        return {k: _drop_unexpanded(v) for k, v in data.items() if not _is_placeholder(v)}
    elif isinstance(data, list):
        return [_drop_unexpanded(item) for item in data]
    return data


def _is_placeholder(value) -> bool:
    return isinstance(value, str) and re.fullmatch(r"\$\{[^}]+\}", value) is not None


def load_config_from_yaml(config_path: Path, profile_name: str) -> ProfileConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config YAML file
        profile_name: Name of profile to load

    Returns:
        ProfileConfig for the requested profile

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config is invalid
        KeyError: If profile doesn't exist
    """
    with open(config_path) as f:
        raw_data = yaml.safe_load(f)

    expanded_data = _drop_unexpanded(expand_env_vars_recursive(raw_data))

    config_file = ConfigFile(**expanded_data)

    if profile_name not in config_file.profiles:
        available = ", ".join(config_file.profiles.keys())
        raise KeyError(
            f"Profile '{profile_name}' not found. " f"Available profiles: {available}"
        )

    return config_file.profiles[profile_name]


def load_config_from_env() -> ProfileConfig:
    """Load configuration from environment variables (fallback mode).

    Returns:
        ProfileConfig constructed from environment variables
    """
    backend = os.environ.get("CHORUS_BACKEND", "gemini")

    # Hosted backends other than Gemini use one model for every role
    if backend == "openrouter":
        api_key = os.environ.get("OPENROUTER_API_KEY")
        model = auxiliary_model = OPENROUTER_DEFAULT_MODEL
    elif backend == "anthropic":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        model = auxiliary_model = ANTHROPIC_DEFAULT_MODEL
    else:
        api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")
        model, auxiliary_model = GEMINI_DEFAULT_MODEL, GEMINI_AUXILIARY_MODEL

    gateway = GatewayConfig(backend=backend, api_key=api_key)

    generation = GenerationConfig(
        research_mode=os.environ.get("CHORUS_RESEARCH_MODE", ResearchMode.OFFLINE.value),
        depth=os.environ.get("CHORUS_DEPTH", GenerationDepth.DEEP.value),
        model=model,
        auxiliary_model=auxiliary_model,
    )

    return ProfileConfig(gateway=gateway, generation=generation)


def default_config_path() -> Path:
    return Path(__file__).parent / "models.yaml"


def list_profiles(config_path: Path | None = None) -> dict[str, ProfileConfig]:
    """All profiles defined in the config file (empty if it does not exist)."""
    config_path = config_path or default_config_path()
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        raw_data = yaml.safe_load(f)
    expanded = _drop_unexpanded(expand_env_vars_recursive(raw_data))
    return ConfigFile(**expanded).profiles


def load_config(
    profile: str | None = None,
    config_path: Path | None = None,
) -> ProfileConfig:
    """Load configuration from YAML file or environment variables.

    Tries the YAML config file first and falls back to environment variables
    if the file doesn't exist or cannot be loaded.

    Args:
        profile: Profile name to load. If None, uses MODEL_PROFILE env var
                or "default".
        config_path: Path to config file. If None, uses chorus/config/models.yaml.

    Returns:
        ProfileConfig with all component configurations
    """
    if profile is None:
        profile = os.environ.get("MODEL_PROFILE", "default")

    if config_path is None:
        config_path = default_config_path()

    if config_path.exists():
        try:
            return load_config_from_yaml(config_path, profile)
        except Exception as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            logger.warning("Falling back to environment variables...")
            return load_config_from_env()
    else:
        logger.info(f"Config file {config_path} not found, using environment variables")
        return load_config_from_env()
