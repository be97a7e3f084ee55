"""Vector embeddings for stored transcript segments via the Gemini API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from google import genai
from google.genai import types

from catalog.store import CatalogStore
from config.settings import EMBEDDING_BATCH_SIZE, EMBEDDING_DIMENSIONS, EMBEDDING_MODEL, GOOGLE_API_KEY

logger = logging.getLogger(__name__)

_genai_client: Optional[genai.Client] = None


def get_genai_client() -> genai.Client:
    global _genai_client  # noqa: PLW0603
    if _genai_client is None:
        _genai_client = genai.Client(api_key=GOOGLE_API_KEY) if GOOGLE_API_KEY else genai.Client()
    return _genai_client


class EmbeddingService:
    """Fills the `embedding` column of transcript segments that have none yet."""

    def __init__(
        self,
        store: CatalogStore,
        client: Optional[genai.Client] = None,
        *,
        model: str = EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMENSIONS,
    ):
        self._store = store
        self._client = client
        self._model = model
        self._dimensions = dimensions

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_genai_client()
        return self._client

    def embed_text(self, text: str) -> List[float]:
        response = self.client.models.embed_content(
            model=self._model,
            contents=text,
            config=types.EmbedContentConfig(output_dimensionality=self._dimensions),
        )
        return list(response.embeddings[0].values)

    def generate_for_video(self, video_id: str, batch_size: int = 50) -> Dict[str, int]:
        """Embed up to `batch_size` pending segments, one at a time. Failures are logged and skipped."""
        processed, attempted = self._embed_pending(video_id, batch_size, set())
        return {"processed": processed, "total": len(attempted)}

    def generate_all(self, video_id: str, batch_size: int = EMBEDDING_BATCH_SIZE) -> int:
        """Embed every pending segment of a video, trying each segment at most once per call."""
        generated = 0
        seen: Set[str] = set()
        while True:
            processed, attempted = self._embed_pending(video_id, batch_size, seen)
            if not attempted:
                return generated
            generated += processed
            seen.update(attempted)

    def _embed_pending(self, video_id: str, batch_size: int, skip: Set[str]) -> Tuple[int, List[str]]:
        rows = self._store.segments_missing_embeddings(video_id, batch_size + len(skip))
        pending = [row for row in rows if row["id"] not in skip][:batch_size]
        processed = 0
        for segment in pending:
            try:
                vector = self.embed_text(segment.get("text") or "")
                self._store.update_segment_embedding(segment["id"], vector)
                processed += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning("Embedding failed for transcript segment %s: %s", segment.get("id"), exc)
        if pending:
            logger.info("Embedded %s/%s segments for video %s", processed, len(pending), video_id)
        return processed, [row["id"] for row in pending]

    def embedding_status(self, video_id: str) -> Dict[str, Any]:
        total = self._store.count_transcripts(video_id)
        without = self._store.count_segments_missing_embeddings(video_id)
        with_embeddings = total - without
        return {
            "total": total,
            "withEmbeddings": with_embeddings,
            "withoutEmbeddings": without,
            "progress": (with_embeddings / total) * 100 if total else 0,
        }


__all__ = ["EmbeddingService", "get_genai_client"]
