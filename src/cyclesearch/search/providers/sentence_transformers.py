"""Offline embedding provider on ``sentence-transformers``."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from cyclesearch.exceptions import ProviderCallError, ProviderUnavailableError

try:
    from sentence_transformers import SentenceTransformer

    _HAS_SENTENCE_TRANSFORMERS = True
except ImportError:  # pragma: no cover
    _HAS_SENTENCE_TRANSFORMERS = False

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "all-MiniLM-L6-v2"


class SentenceTransformerEmbedding:
    """Credential-free provider for indexing without network access.

    The model is loaded on first use; encoding runs in a worker thread.
    Vectors are L2-normalized by default so cosine scores line up with
    :class:`~cyclesearch.search.stores.local.LocalVectorStore`.  There is
    no ``summarize``: session jobs are embedded from their raw JSON.

    A model that cannot be loaded raises :class:`ProviderUnavailableError`
    (final); an encode failure raises :class:`ProviderCallError` (retried).

    Requires the ``local`` extra::

        pip install cyclesearch[local]
    """

    def __init__(
        self,
        model_name: str = DEFAULT_LOCAL_MODEL,
        *,
        device: str | None = None,
        normalize: bool = True,
        encode_batch_size: int = 32,
    ) -> None:
        if not _HAS_SENTENCE_TRANSFORMERS:
            msg = "sentence-transformers is not installed; install cyclesearch[local]"
            raise ProviderUnavailableError(msg)
        self._model_name = model_name
        self._device = device
        self._normalize = normalize
        self._encode_batch_size = encode_batch_size
        self._model: Any = None
        self._load_lock = threading.Lock()

    def _encoder(self) -> Any:
        with self._load_lock:
            if self._model is None:
                logger.info("Loading local embedding model %s", self._model_name)
                try:
                    self._model = SentenceTransformer(self._model_name, device=self._device)
                except (OSError, ValueError) as exc:
                    msg = f"Could not load embedding model {self._model_name!r}: {exc}"
                    raise ProviderUnavailableError(msg) from exc
            return self._model

    def _encode(self, texts: Sequence[str]) -> list[list[float]]:
        model = self._encoder()
        try:
            vectors = model.encode(
                list(texts),
                batch_size=self._encode_batch_size,
                normalize_embeddings=self._normalize,
                convert_to_numpy=True,
            )
        except RuntimeError as exc:
            msg = f"Local embedding failed: {exc}"
            raise ProviderCallError(msg) from exc
        return [row.tolist() for row in vectors]

    async def embed(self, text: str) -> list[float]:
        [vector] = await asyncio.to_thread(self._encode, [text])
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return await asyncio.to_thread(self._encode, texts)

    @property
    def dimensions(self) -> int:
        dim = self._encoder().get_sentence_embedding_dimension()
        if not dim:
            msg = f"Model {self._model_name!r} does not report its embedding size"
            raise ProviderUnavailableError(msg)
        return int(dim)

    @property
    def model_name(self) -> str:
        return self._model_name
