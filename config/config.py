"""
Configuration for the topic guard service.

Settings are plain dataclasses loaded from environment variables. The topic
itself (name, description, assistant name, keywords) can also be loaded from
a JSON file so the same process can be pointed at different subjects.
"""
import json
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from utils.errors import TopicConfigError

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "Trains"
DEFAULT_TOPIC_DESCRIPTION = (
    "Trains, railways, locomotives, rail travel and the history of rail transport"
)
DEFAULT_KEYWORDS = (
    "train", "railroad", "locomotive", "steam engine", "track", "subway",
    "station", "conductor", "cargo", "freight", "ticket", "journey",
    "express", "platform", "railways", "railway network",
)


def _get_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y"}


def _split_keywords(value: Optional[str]) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    return tuple(part for part in value.split(",") if part.strip())


@dataclass
class EmbeddingsConfig:
    """
    Settings for the MiniLM embedding backend.

    Attributes:
        model_name: HuggingFace model id exported to ONNX on first use
        cache_dir: Directory for the ONNX model and tokenizer files
        thread_limit: intra-op threads for onnxruntime
        batch_size: Texts per inference batch
        enabled: When False the gate always runs on the lexical fallback
    """
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    cache_dir: Optional[str] = None
    thread_limit: int = 2
    batch_size: int = 32
    enabled: bool = True

    @classmethod
    def from_env(cls) -> "EmbeddingsConfig":
        return cls(
            model_name=os.getenv("EMBEDDING_MODEL", cls.model_name),
            cache_dir=os.getenv("EMBEDDING_CACHE_DIR") or None,
            thread_limit=int(os.getenv("EMBEDDING_THREAD_LIMIT", "2")),
            batch_size=int(os.getenv("EMBEDDING_BATCH_SIZE", "32")),
            enabled=_get_bool(os.getenv("EMBEDDING_ENABLED"), True),
        )


@dataclass
class GenerationConfig:
    """Settings for the Anthropic generation client."""
    api_key: Optional[str] = None
    model: str = "claude-haiku-4-5-20251001"
    max_tokens: int = 1024
    temperature: float = 0.7
    timeout: int = 60

    @classmethod
    def from_env(cls) -> "GenerationConfig":
        return cls(
            api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            model=os.getenv("GENERATION_MODEL", cls.model),
            max_tokens=int(os.getenv("GENERATION_MAX_TOKENS", "1024")),
            temperature=float(os.getenv("GENERATION_TEMPERATURE", "0.7")),
            timeout=int(os.getenv("GENERATION_TIMEOUT", "60")),
        )


@dataclass
class ValidationConfig:
    """
    Relevance gate tuning.

    threshold is compared against the maximum cosine similarity between the
    user text and any topic keyword; timeout_ms bounds how long the gate may
    wait on the semantic pipeline before allowing the message.
    """
    threshold: float = 0.5
    timeout_ms: int = 3000

    def __post_init__(self):
        if not -1.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be within [-1, 1], got {self.threshold}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")

    @classmethod
    def from_env(cls) -> "ValidationConfig":
        return cls(
            threshold=float(os.getenv("VALIDATION_THRESHOLD", "0.5")),
            timeout_ms=int(os.getenv("VALIDATION_TIMEOUT_MS", "3000")),
        )


@dataclass(frozen=True)
class TopicConfig:
    """
    The subject a conversation is restricted to.

    Keywords are stored as a tuple and blank entries are dropped, so the set
    handed to the relevance gate is immutable for the lifetime of the topic.
    threshold/timeout_ms override the process ValidationConfig when set.
    """
    topic: str
    topic_description: str
    assistant_name: str
    keywords: Tuple[str, ...] = field(default_factory=tuple)
    threshold: Optional[float] = None
    timeout_ms: Optional[int] = None

    def __post_init__(self):
        if not self.topic or not self.topic.strip():
            raise TopicConfigError("topic must be a non-empty string")
        if not self.assistant_name or not self.assistant_name.strip():
            raise TopicConfigError("assistant_name must be a non-empty string")
        if isinstance(self.keywords, str):
            raise TopicConfigError("keywords must be a list of strings, not a string")
        cleaned = tuple(k.strip() for k in self.keywords if isinstance(k, str) and k.strip())
        object.__setattr__(self, "keywords", cleaned)

        if self.threshold is not None and not (math.isfinite(self.threshold) and -1.0 <= self.threshold <= 1.0):
            raise TopicConfigError(f"threshold must be within [-1, 1], got {self.threshold}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise TopicConfigError(f"timeout_ms must be positive, got {self.timeout_ms}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TopicConfig":
        """
        Build a TopicConfig from camelCase or snake_case keys.

        Raises:
            TopicConfigError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise TopicConfigError(f"Topic config must be an object, got {type(data).__name__}")

        def pick(*names, default=None):
            for name in names:
                if name in data and data[name] is not None:
                    return data[name]
            return default

        topic = pick("topic")
        if topic is None:
            raise TopicConfigError("Topic config is missing 'topic'")
        keywords = pick("keywords", default=())
        if isinstance(keywords, str) or not isinstance(keywords, Iterable):
            raise TopicConfigError("'keywords' must be a list of strings")

        threshold = pick("threshold")
        timeout_ms = pick("timeout_ms", "timeoutMs")
        try:
            return cls(
                topic=str(topic),
                topic_description=str(pick("topic_description", "topicDescription", default=topic)),
                assistant_name=str(pick("assistant_name", "assistantName", default=f"{topic} Bot")),
                keywords=tuple(keywords),
                threshold=float(threshold) if threshold is not None else None,
                timeout_ms=int(timeout_ms) if timeout_ms is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise TopicConfigError(f"Invalid topic config: {e}") from e

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "TopicConfig":
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise TopicConfigError(f"Topic file not found: {path}") from e
        except json.JSONDecodeError as e:
            raise TopicConfigError(f"Topic file {path} is not valid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "TopicConfig":
        topic_file = os.getenv("TOPIC_FILE")
        if topic_file:
            logger.info(f"Loading topic config from {topic_file}")
            return cls.from_file(topic_file)

        topic = os.getenv("TOPIC", DEFAULT_TOPIC)
        keywords = _split_keywords(os.getenv("TOPIC_KEYWORDS"))
        if keywords is None:
            keywords = DEFAULT_KEYWORDS if topic == DEFAULT_TOPIC else ()
        return cls(
            topic=topic,
            topic_description=os.getenv(
                "TOPIC_DESCRIPTION",
                DEFAULT_TOPIC_DESCRIPTION if topic == DEFAULT_TOPIC else topic,
            ),
            assistant_name=os.getenv("ASSISTANT_NAME", f"{topic} Bot"),
            keywords=keywords,
        )


@dataclass
class AppConfig:
    """Aggregated process configuration."""
    topic: TopicConfig
    embeddings: EmbeddingsConfig = field(default_factory=EmbeddingsConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    host: str = "0.0.0.0"
    port: int = 1993

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            topic=TopicConfig.from_env(),
            embeddings=EmbeddingsConfig.from_env(),
            generation=GenerationConfig.from_env(),
            validation=ValidationConfig.from_env(),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "1993")),
        )


_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get or create the process-wide AppConfig from the environment."""
    global _config_instance
    if _config_instance is None:
        _config_instance = AppConfig.from_env()
        logger.info(f"Configuration loaded for topic '{_config_instance.topic.topic}'")
    return _config_instance
