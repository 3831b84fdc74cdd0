import numpy as np
from typing import List
import logging
import threading

logger = logging.getLogger(__name__)


class TextEmbedder:
    def __init__(self, model_name: str = "BAAI/bge-m3", dimension: int = 1024):
        """
        Initialize the text embedder with a sentence-transformers model.
        The model is loaded on first use so that failures degrade to the
        zero vector instead of breaking start-up.
        """
        self.model_name = model_name
        self.dimension = dimension
        self._model = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> 'TextEmbedder':
        return cls(model_name=config.EMBEDDING_MODEL, dimension=config.EMBEDDING_DIMENSION)

    def _build_model(self):
        from sentence_transformers import SentenceTransformer

        return SentenceTransformer(self.model_name)

    @property
    def model(self):
        # Worker threads share one instance
        if self._model is None:
            with self._lock:
                if self._model is None:
                    self._model = self._build_model()
                    logger.info(f"Loaded embedding model: {self.model_name}")
        return self._model

    def zero_vector(self) -> np.ndarray:
        return np.zeros(self.dimension)

    def embed_text(self, text: str) -> np.ndarray:
        """Generate embedding for a single text; zero vector on failure."""
        if not text or not text.strip():
            logger.warning("Empty text provided for embedding")
            return self.zero_vector()

        try:
            embedding = np.asarray(self.model.encode(text, convert_to_numpy=True), dtype=float)
        except Exception as e:
            logger.error(f"Failed to embed text: {e}")
            return self.zero_vector()

        if embedding.ndim != 1 or embedding.size == 0:
            logger.error(f"Embedding model returned unusable shape {embedding.shape}")
            return self.zero_vector()
        return embedding

    def embed_batch(self, texts: List[str]) -> np.ndarray:
        """Generate embeddings for a batch of texts."""
        if not texts:
            return np.zeros((0, self.dimension))

        try:
            return np.asarray(self.model.encode(texts, convert_to_numpy=True), dtype=float)
        except Exception as e:
            logger.error(f"Failed to embed batch: {e}")
            return np.zeros((len(texts), self.dimension))
