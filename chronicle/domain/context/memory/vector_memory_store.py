from typing import Dict, List, Any, Optional
from collections import Counter
from datetime import datetime, timezone
import asyncio
import json
import math
import re


def _tokenize(text: str) -> List[str]:
    return re.findall(r"\w+", text.lower())


def _embed(text: str) -> Dict[str, float]:
    """Term-frequency vector, L2-normalized"""
    counts = Counter(_tokenize(text))
    norm = math.sqrt(sum(c * c for c in counts.values()))
    if not norm:
        return {}
    return {term: count / norm for term, count in counts.items()}


def _cosine(a: Dict[str, float], b: Dict[str, float]) -> float:
    if len(a) > len(b):
        a, b = b, a
    return sum(weight * b.get(term, 0.0) for term, weight in a.items())


class VectorMemoryStore:
    """Similarity index over ledger-persisted records"""

    def __init__(self, namespace: str = "orchestrator", max_entries: int = 10000):
        self.namespace = namespace
        self.max_entries = max_entries
        self.memories: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def add(self, cid: str, payload: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> str:
        """Index a stored record under its cid"""

        content = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)

        async with self._lock:
            self.memories[cid] = {
                "cid": cid,
                "payload": payload,
                "metadata": metadata or {},
                "indexed_at": datetime.now(timezone.utc).isoformat(),
                "embedding": _embed(content)
            }

            # Evict oldest entries past the cap
            while len(self.memories) > self.max_entries:
                oldest = next(iter(self.memories))
                del self.memories[oldest]

        return cid

    async def search(self, query: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Top-``limit`` records by cosine similarity to ``query``"""

        query_vector = _embed(query)
        if not query_vector or limit < 1:
            return []

        async with self._lock:
            scored = [
                (_cosine(query_vector, memory["embedding"]), memory)
                for memory in self.memories.values()
            ]

        results = []
        for score, memory in sorted(scored, key=lambda item: item[0], reverse=True)[:limit]:
            if score <= 0:
                break
            results.append({
                "cid": memory["cid"],
                "payload": memory["payload"],
                "metadata": memory["metadata"],
                "score": round(score, 4)
            })

        return results

    async def count(self) -> int:
        async with self._lock:
            return len(self.memories)
