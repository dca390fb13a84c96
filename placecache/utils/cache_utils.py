import re
from typing import Dict, Iterable, Optional

# Key kinds reported by stats()
KIND_METADATA = "metadata"
KIND_CHUNKS = "chunks"
KIND_PAGINATED = "paginated"
KIND_FULL = "full"

_PAGE_SUFFIX = re.compile(r":page\d+:limit\d+$")
_CHUNK_SUFFIX = re.compile(r":chunk:\d+$")


class DatasetKeys:
    """
    Key layout for one logical dataset.

    - ``<dataset>``                       legacy whole-dataset blob
    - ``<dataset>:meta``                  chunk metadata
    - ``<dataset>:chunk:<i>``             chunk i
    - ``<dataset>:page<p>:limit<n>``      precomputed page response
    """

    @staticmethod
    def dataset_key(*parts: str) -> str:
        """Join and normalize parts into a dataset key, e.g. attractions:hotels:pakistan"""
        cleaned = []
        for part in parts:
            part = str(part).strip().lower()
            part = re.sub(r"[\s\-]+", "_", part)
            if part:
                cleaned.append(part)
        if not cleaned:
            raise ValueError("Dataset key needs at least one non-empty part")
        return ":".join(cleaned)

    @staticmethod
    def legacy_key(dataset_key: str) -> str:
        return dataset_key

    @staticmethod
    def meta_key(dataset_key: str) -> str:
        return f"{dataset_key}:meta"

    @staticmethod
    def chunk_key(dataset_key: str, index: int) -> str:
        return f"{dataset_key}:chunk:{index}"

    @staticmethod
    def chunk_pattern(dataset_key: str) -> str:
        return f"{dataset_key}:chunk:*"

    @staticmethod
    def page_key(dataset_key: str, page: int, page_size: int) -> str:
        return f"{dataset_key}:page{page}:limit{page_size}"

    @staticmethod
    def classify(key: str) -> str:
        """Which kind of record a raw store key holds"""
        if key.endswith(":meta"):
            return KIND_METADATA
        if _CHUNK_SUFFIX.search(key):
            return KIND_CHUNKS
        if _PAGE_SUFFIX.search(key):
            return KIND_PAGINATED
        return KIND_FULL

    @staticmethod
    def breakdown(keys: Iterable[str]) -> Dict[str, int]:
        counts = {KIND_METADATA: 0, KIND_CHUNKS: 0, KIND_PAGINATED: 0, KIND_FULL: 0}
        for key in keys:
            counts[DatasetKeys.classify(key)] += 1
        return counts

    @staticmethod
    def pattern(prefix: Optional[str] = None) -> str:
        """Glob matching every key under a dataset-key prefix"""
        if not prefix or prefix == "*":
            return "*"
        # Bare prefix so the legacy blob (the dataset key itself) matches too
        return f"{prefix.rstrip('*')}*"
