"""Embedding providers."""

from cyclesearch.search.protocols import EmbeddingProvider, SupportsSummarize
from cyclesearch.search.providers.openai import OpenAIEmbedding
from cyclesearch.search.providers.sentence_transformers import SentenceTransformerEmbedding

__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbedding",
    "SentenceTransformerEmbedding",
    "SupportsSummarize",
]
