"""Shared fixtures."""
import pytest

from clients.embeddings.model_loader import EmbeddingModelLoader
from config.config import TopicConfig, ValidationConfig
from tests.fixtures.stubs import OFF_TOPIC, ON_TOPIC, CountingFactory, FakeLLMProvider, StubBackend

TRAIN_KEYWORDS = ("train", "locomotive", "railway")


@pytest.fixture
def train_topic():
    return TopicConfig(
        topic="Trains",
        topic_description="Trains, railways and rail travel",
        assistant_name="Trains Bot",
        keywords=TRAIN_KEYWORDS,
    )


@pytest.fixture
def validation_settings():
    return ValidationConfig(threshold=0.5, timeout_ms=2000)


@pytest.fixture
def stub_backend():
    """Backend that scores steam/rail phrasing on-topic and weather off-topic."""
    vectors = {keyword: ON_TOPIC for keyword in TRAIN_KEYWORDS}
    vectors.update({
        "Tell me about steam power on the rails": ON_TOPIC,
        "Describe the weather tomorrow": OFF_TOPIC,
    })
    return StubBackend(vectors=vectors, default=OFF_TOPIC)


@pytest.fixture
def loader_factory(stub_backend):
    return CountingFactory(backend=stub_backend)


@pytest.fixture
def model_loader(loader_factory):
    return EmbeddingModelLoader(loader_factory)


@pytest.fixture
def failing_loader():
    return EmbeddingModelLoader(CountingFactory(error=RuntimeError("model download blocked")))


@pytest.fixture
def fake_llm():
    return FakeLLMProvider()
