"""Chroma-backed retrieval of memory chunks for one person.

Retrieval is supplementary: any failure (server down, collection missing,
client library unavailable) is logged and yields no hits, and the reply is
generated without snippets.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from novana.chat.models import RetrievalHit

logger = logging.getLogger(__name__)


def split_chroma_url(url: str) -> tuple[str, int, bool]:
    """Break a Chroma base URL into the host, port and TLS flag its client takes."""
    parsed = httpx.URL(url)
    ssl = parsed.scheme == "https"
    return parsed.host, parsed.port or (443 if ssl else 80), ssl


class RetrievalClient:
    """Queries one Chroma collection, always filtered to a single person.

    Construct once at startup and inject. The HTTP connection is opened on
    the first query and kept; pass ``client`` to supply a ready Chroma
    client (tests use a fake).
    """

    def __init__(
        self,
        url: str = "http://127.0.0.1:8000",
        collection_name: str = "novana_memories",
        top_k: int = 3,
        client: Any = None,
    ) -> None:
        self.url = url
        self.collection_name = collection_name
        self.top_k = top_k
        self._client = client
        self._collection: Any = None

    def _get_collection(self) -> Any:
        if self._collection is None:
            if self._client is None:
                import chromadb

                host, port, ssl = split_chroma_url(self.url)
                self._client = chromadb.HttpClient(host=host, port=port, ssl=ssl)
                logger.info("Connected to Chroma at %s", self.url)
            self._collection = self._client.get_or_create_collection(name=self.collection_name)
        return self._collection

    def _query_sync(self, person_id: int, text: str) -> list[RetrievalHit]:
        collection = self._get_collection()
        res = collection.query(
            query_texts=[text],
            n_results=self.top_k,
            where={"person_id": person_id},
        )
        ids = (res.get("ids") or [[]])[0] or []
        docs = (res.get("documents") or [[]])[0] or []
        metas = (res.get("metadatas") or [[]])[0] or []

        hits = []
        for i, hit_id in enumerate(ids[: self.top_k]):
            hits.append(
                RetrievalHit(
                    id=str(hit_id),
                    text=docs[i] if i < len(docs) and docs[i] else "",
                    metadata=metas[i] if i < len(metas) and metas[i] else {},
                )
            )
        return hits

    async def query(self, person_id: int, text: str) -> list[RetrievalHit]:
        """Return up to ``top_k`` chunks for *person_id*, most relevant first."""
        try:
            return await asyncio.to_thread(self._query_sync, person_id, text)
        except Exception:
            logger.exception("Chroma query failed (continuing without RAG)")
            return []
