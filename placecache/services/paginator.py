"""
Serve one page of a chunked dataset by reading only the chunks it spans.
"""

import asyncio
import logging
from typing import Optional, Sequence

from placecache.models.responses import PageEntry, PaginationInfo, Record
from placecache.services.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


def validate_page_request(page: int, page_size: int):
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")


def paginate(records: Sequence[Record], page: int, page_size: int) -> PageEntry:
    """Slice a fully loaded dataset in memory"""
    validate_page_request(page, page_size)
    start_index = (page - 1) * page_size
    return PageEntry(
        items=list(records[start_index:start_index + page_size]),
        pagination=PaginationInfo.build(len(records), page, page_size),
    )


class ChunkReader:
    """Pages over datasets held in a ChunkStore"""

    def __init__(self, chunk_store: ChunkStore):
        self.chunk_store = chunk_store

    async def read_page(self, dataset_key: str, page: int, page_size: int) -> Optional[PageEntry]:
        """
        Get one page, None when no chunked entry exists.

        Flow:
        1. Load metadata (absent -> None)
        2. Pages past the end are valid and come back empty
        3. Fetch chunks [start_chunk..end_chunk] concurrently
        4. Join them in chunk order and slice the page out
        """
        validate_page_request(page, page_size)

        metadata = await self.chunk_store.get_metadata(dataset_key)
        if metadata is None:
            return None

        total_items = metadata.total_items
        pagination = PaginationInfo.build(total_items, page, page_size)

        start_index = (page - 1) * page_size
        if start_index >= total_items:
            return PageEntry(items=[], pagination=pagination)

        end_index = min(start_index + page_size, total_items)
        start_chunk = start_index // metadata.chunk_size
        end_chunk = (end_index - 1) // metadata.chunk_size

        chunks = await asyncio.gather(*(
            self.chunk_store.get_chunk(dataset_key, index)
            for index in range(start_chunk, end_chunk + 1)
        ))

        combined = []
        for index, chunk in zip(range(start_chunk, end_chunk + 1), chunks):
            if chunk is None:
                # Metadata without its chunks is unusable; let a later tier rebuild it
                logger.warning(f"Chunk {index} missing for {dataset_key}, treating dataset as absent")
                return None
            combined.extend(chunk)

        offset = start_index - start_chunk * metadata.chunk_size
        items = combined[offset:offset + page_size]
        logger.debug(
            f"Read page {page} of {dataset_key} from chunks {start_chunk}-{end_chunk} ({len(items)} items)"
        )
        return PageEntry(items=items, pagination=pagination)
