"""Process configuration for the topic guard service."""
from config.config import (
    AppConfig,
    EmbeddingsConfig,
    GenerationConfig,
    TopicConfig,
    ValidationConfig,
    get_config,
)

__all__ = [
    "AppConfig",
    "EmbeddingsConfig",
    "GenerationConfig",
    "TopicConfig",
    "ValidationConfig",
    "get_config",
]
