"""
Lazy, fail-once acquisition of the embedding backend.

Lifecycle of a loader:

    UNLOADED --load()--> LOADING --+--> LOADED  (handle cached, reused forever)
                                   +--> FAILED  (failure cached, never retried)

Exactly one acquisition runs per loader, no matter how many coroutines call
load() concurrently; they all await the same future. Acquisition runs on a
dedicated daemon thread because exporting/loading the ONNX model blocks; a
process that exits while the export is still running does not wait for it.

A process-wide loader is available through get_model_loader(). Components
take a loader argument so tests can hand in their own instance with a stub
factory instead of touching the process-wide one.
"""
import asyncio
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol

from config.config import EmbeddingsConfig

logger = logging.getLogger(__name__)


class EmbeddingBackend(Protocol):
    """Anything that can embed a batch of strings into unit vectors."""

    async def embed(self, texts: List[str]) -> Any:
        """Return a batch object exposing array() and release()."""
        ...


class ModelState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class ModelLoadResult:
    """Success carries the backend handle, failure carries the error text."""
    handle: Optional[EmbeddingBackend] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.handle is not None


BackendFactory = Callable[[], EmbeddingBackend]


def default_backend_factory(settings: Optional[EmbeddingsConfig] = None) -> BackendFactory:
    """Factory building the ONNX MiniLM encoder from embeddings settings."""
    settings = settings or EmbeddingsConfig()

    def factory() -> EmbeddingBackend:
        if not settings.enabled:
            raise RuntimeError("Semantic embeddings disabled by configuration")
        from clients.embeddings.sentence_transformers import AllMiniLMModel
        return AllMiniLMModel(
            model_name=settings.model_name,
            cache_dir=settings.cache_dir,
            thread_limit=settings.thread_limit,
            batch_size=settings.batch_size,
        )

    return factory


class EmbeddingModelLoader:
    """Memoizes the outcome of a single backend acquisition."""

    def __init__(self, factory: BackendFactory):
        self._factory = factory
        self._lock = threading.Lock()
        self._state = ModelState.UNLOADED
        self._result: Optional[ModelLoadResult] = None
        self._future: Optional["Future[ModelLoadResult]"] = None
        self.attempts = 0

    @property
    def state(self) -> ModelState:
        return self._state

    def _acquire(self) -> ModelLoadResult:
        """Run the factory once; never raises."""
        logger.info("Loading embedding backend...")
        try:
            handle = self._factory()
            if handle is None:
                raise RuntimeError("Embedding backend factory returned None")
        except Exception as e:
            logger.warning(f"Failed to load embedding backend, falling back to keyword validation: {e}")
            result = ModelLoadResult(error=str(e) or type(e).__name__)
            state = ModelState.FAILED
        else:
            logger.info("Embedding backend loaded successfully")
            result = ModelLoadResult(handle=handle)
            state = ModelState.LOADED

        with self._lock:
            self._result = result
            self._state = state
        return result

    def _start(self) -> "Future[ModelLoadResult]":
        """Return the in-flight future, starting the acquisition if first."""
        with self._lock:
            if self._future is None:
                self._state = ModelState.LOADING
                self.attempts += 1
                future: "Future[ModelLoadResult]" = Future()
                future.set_running_or_notify_cancel()
                # Interpreter exit does not wait for a pending export
                threading.Thread(
                    target=lambda: future.set_result(self._acquire()),
                    name="embedding-loader",
                    daemon=True,
                ).start()
                self._future = future
            return self._future

    def preload(self) -> None:
        """Start acquisition in the background without waiting for it."""
        if self._result is None:
            self._start()

    async def load(self) -> ModelLoadResult:
        """
        Get the backend, acquiring it on first use.

        Returns the cached result immediately once LOADED or FAILED. While
        LOADING, waits on the shared acquisition; cancelling the waiter does
        not cancel the acquisition.
        """
        result = self._result
        if result is not None:
            return result
        future = self._start()
        return await asyncio.shield(asyncio.wrap_future(future))


_loader_instance: Optional[EmbeddingModelLoader] = None
_loader_lock = threading.Lock()


def get_model_loader(settings: Optional[EmbeddingsConfig] = None) -> EmbeddingModelLoader:
    """
    Get or create the process-wide EmbeddingModelLoader.

    settings only matter on the first call, which fixes the factory for the
    lifetime of the process.
    """
    global _loader_instance
    if _loader_instance is not None:
        return _loader_instance

    with _loader_lock:
        if _loader_instance is None:
            if settings is None:
                from config.config import get_config
                settings = get_config().embeddings
            logger.info(f"Creating process-wide embedding loader for {settings.model_name}")
            _loader_instance = EmbeddingModelLoader(default_backend_factory(settings))
        return _loader_instance
