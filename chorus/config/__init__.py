"""Configuration system for model gateways and chat sessions."""

from .loader import (
    load_config,
    load_config_from_env,
    load_config_from_yaml,
    list_profiles,
    ProfileConfig,
    GatewayConfig,
    TemperatureConfig,
    GenerationConfig,
    PacingConfig,
    EnrichmentConfig,
    SessionConfig,
    StorageConfig,
)
from .factory import (
    GatewayCall,
    MockGateway,
    create_gateway,
    create_store,
    create_orchestrator,
    create_session,
)

__all__ = [
    # Loader
    "load_config",
    "load_config_from_env",
    "load_config_from_yaml",
    "list_profiles",
    "ProfileConfig",
    "GatewayConfig",
    "TemperatureConfig",
    "GenerationConfig",
    "PacingConfig",
    "EnrichmentConfig",
    "SessionConfig",
    "StorageConfig",
    # Factory
    "GatewayCall",
    "MockGateway",
    "create_gateway",
    "create_store",
    "create_orchestrator",
    "create_session",
]
