from typing import List, Sequence

from loguru import logger

from clipvault.exceptions import ClipVaultException, EmbeddingException
from clipvault.providers.base import EmbeddingProvider


class EmbeddingClient:
    """
    Turns clip descriptions into fixed-width vectors, one per description and in
    the same order.

    Descriptions are sent in batches of at most ``max_batch``. Every vector the
    provider returns is checked against ``dimensions``.
    """

    def __init__(self, provider: EmbeddingProvider, dimensions: int = 1536, max_batch: int = 10):
        if max_batch < 1:
            raise ValueError("max_batch must be at least 1")
        self.provider = provider
        self.dimensions = dimensions
        self.max_batch = max_batch

    def batches(self, descriptions: Sequence[str]) -> List[List[str]]:
        return [
            list(descriptions[i:i + self.max_batch])
            for i in range(0, len(descriptions), self.max_batch)
        ]

    async def embed(self, descriptions: Sequence[str]) -> List[List[float]]:
        if not descriptions:
            return []

        vectors: List[List[float]] = []
        for index, batch in enumerate(self.batches(descriptions)):
            try:
                result = await self.provider.batch_embedding(batch)
            except ClipVaultException as e:
                raise EmbeddingException(
                    f"Embedding batch {index} failed: {e.message}",
                    details={"batch": index, **e.details},
                ) from e
            except Exception as e:
                raise EmbeddingException(f"Embedding batch {index} failed: {e}", details={"batch": index}) from e

            if len(result) != len(batch):
                raise EmbeddingException(
                    f"Embedding count mismatch: expected {len(batch)}, got {len(result)}",
                    details={"batch": index, "expected": len(batch), "actual": len(result)},
                )
            for offset, vector in enumerate(result):
                if len(vector) != self.dimensions:
                    raise EmbeddingException(
                        f"Embedding dimension mismatch at index {len(vectors) + offset}: "
                        f"expected {self.dimensions}, got {len(vector)}",
                        details={"index": len(vectors) + offset, "expected": self.dimensions, "actual": len(vector)},
                    )
            vectors.extend([float(value) for value in vector] for vector in result)

        logger.info(f"Embedded {len(vectors)} descriptions in {len(self.batches(descriptions))} batch(es)")
        return vectors
