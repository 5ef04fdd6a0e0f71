"""
ONNX MiniLM sentence encoder used as the semantic embedding backend.

all-MiniLM-L6-v2 gives 384-dimensional, L2-normalized embeddings in about a
millisecond per short sentence on CPU, which keeps topic validation well
inside the gate's timeout once the model is warm.
"""
import asyncio
import logging
import os
from typing import List, Optional, Union

import numpy as np

logger = logging.getLogger(__name__)


class EmbeddingBatch:
    """
    Result of one embed() call.

    Holds the (n, dim) matrix until release() is called. Callers extract what
    they need with array() and release the batch afterwards so large batches
    are not retained between requests.
    """

    def __init__(self, vectors: np.ndarray):
        self._vectors = vectors

    @property
    def released(self) -> bool:
        return self._vectors is None

    def array(self) -> np.ndarray:
        if self._vectors is None:
            raise RuntimeError("Embedding batch already released")
        return self._vectors

    def release(self) -> None:
        self._vectors = None

    def __len__(self) -> int:
        return 0 if self._vectors is None else len(self._vectors)


class AllMiniLMModel:
    """
    All-MiniLM-L6-v2 model for fast 384-dimensional embeddings.

    - 384 dimensions
    - 512 max tokens
    - embeddings always normalized, so dot product is cosine similarity

    Loading is blocking (ONNX export on first run, tokenizer download); it is
    expected to run on a worker thread through EmbeddingModelLoader.
    """

    DIMENSION = 384

    def __init__(self,
                 model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
                 cache_dir: Optional[str] = None,
                 thread_limit: int = 2,
                 batch_size: int = 32):
        """
        Initialize and load the All-MiniLM model.

        Args:
            model_name: HuggingFace model name
            cache_dir: Directory for caching model files
            thread_limit: Number of threads for inference
            batch_size: Texts per inference batch

        Raises:
            ImportError: If onnxruntime or transformers is missing
            RuntimeError: If the model cannot be exported or loaded
        """
        self.logger = logging.getLogger("all_minilm")
        self.model_name = model_name
        self.cache_dir = cache_dir or os.path.join(os.path.expanduser("~"), ".cache", "sentence_transformers")
        self.thread_limit = thread_limit
        self.batch_size = batch_size

        self.session = None
        self.tokenizer = None

        self.model_path = os.path.join(self.cache_dir, model_name.replace("/", "_"), "model.onnx")

        self._load_model()

    def _load_model(self):
        """Load or export the ONNX model and its tokenizer."""
        try:
            import onnxruntime  # noqa: F401

            if not os.path.exists(self.model_path):
                self._convert_to_onnx()

            self._load_tokenizer()
            self._create_onnx_session()

            self.logger.info(f"All-MiniLM model loaded from {self.model_path}")

        except ImportError as e:
            missing_package = "transformers" if "transformers" in str(e) else "onnxruntime"
            self.logger.error(f"Required package '{missing_package}' not installed")
            raise ImportError(f"Required package '{missing_package}' not installed. Run: pip install {missing_package}") from e
        except Exception as e:
            self.logger.error(f"Failed to load All-MiniLM model: {e}")
            raise RuntimeError(f"Failed to load All-MiniLM ONNX model: {e}") from e

    def _load_tokenizer(self):
        from transformers import AutoTokenizer

        tokenizer_path = os.path.dirname(self.model_path)
        if os.path.exists(os.path.join(tokenizer_path, "tokenizer_config.json")):
            self.tokenizer = AutoTokenizer.from_pretrained(tokenizer_path)
        else:
            self.tokenizer = AutoTokenizer.from_pretrained(self.model_name, cache_dir=self.cache_dir)
            self.tokenizer.save_pretrained(tokenizer_path)

    def _create_onnx_session(self):
        import onnxruntime as ort

        sess_options = ort.SessionOptions()
        sess_options.intra_op_num_threads = self.thread_limit
        sess_options.inter_op_num_threads = 1

        self.session = ort.InferenceSession(
            self.model_path,
            sess_options=sess_options,
            providers=["CPUExecutionProvider"]
        )

    def _convert_to_onnx(self):
        """Export the HuggingFace model to ONNX with optimum."""
        try:
            from optimum.onnxruntime import ORTModelForFeatureExtraction
        except ImportError as e:
            raise ImportError(
                "Required packages for ONNX conversion not installed. "
                "Run: pip install optimum[onnxruntime] transformers"
            ) from e

        export_dir = os.path.dirname(self.model_path)
        os.makedirs(export_dir, exist_ok=True)

        ort_model = ORTModelForFeatureExtraction.from_pretrained(
            self.model_name,
            export=True,
            cache_dir=self.cache_dir
        )
        ort_model.save_pretrained(export_dir)

        self.logger.info(f"Model converted to ONNX format at {self.model_path}")

    def encode(self, texts: Union[str, List[str]]) -> np.ndarray:
        """
        Generate normalized embeddings.

        Args:
            texts: Single text or list of texts

        Returns:
            (dim,) array for a single string, (n, dim) array for a list
        """
        if self.tokenizer is None or self.session is None:
            raise RuntimeError("All-MiniLM model is closed")

        single_text = isinstance(texts, str)
        if single_text:
            texts = [texts]
        if not texts:
            return np.zeros((0, self.DIMENSION), dtype=np.float32)

        input_names = [inp.name for inp in self.session.get_inputs()]
        all_embeddings = []

        for i in range(0, len(texts), self.batch_size):
            batch_texts = texts[i:i + self.batch_size]

            encoded_input = self.tokenizer(
                batch_texts,
                padding=True,
                truncation=True,
                max_length=512,
                return_tensors="np"
            )

            ort_inputs = {
                "input_ids": encoded_input["input_ids"],
                "attention_mask": encoded_input["attention_mask"]
            }
            if "token_type_ids" in input_names:
                ort_inputs["token_type_ids"] = encoded_input.get(
                    "token_type_ids",
                    np.zeros_like(encoded_input["input_ids"])
                )

            last_hidden_state = self.session.run(None, ort_inputs)[0]
            embeddings = self._mean_pooling(last_hidden_state, encoded_input["attention_mask"])
            all_embeddings.append(normalize_rows(embeddings))

        embeddings = np.vstack(all_embeddings)
        return embeddings[0] if single_text else embeddings

    async def embed(self, texts: List[str]) -> EmbeddingBatch:
        """Embed a batch off the event loop."""
        vectors = await asyncio.to_thread(self.encode, list(texts))
        return EmbeddingBatch(vectors)

    @staticmethod
    def _mean_pooling(token_embeddings: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        input_mask_expanded = np.expand_dims(attention_mask, -1)
        sum_embeddings = np.sum(token_embeddings * input_mask_expanded, axis=1)
        sum_mask = np.clip(np.sum(input_mask_expanded, axis=1), a_min=1e-9, a_max=None)
        return sum_embeddings / sum_mask

    def get_dimension(self) -> int:
        return self.DIMENSION

    def close(self):
        self.session = None
        self.tokenizer = None


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalize each row; zero rows stay zero."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return matrix / (norms + 1e-10)
