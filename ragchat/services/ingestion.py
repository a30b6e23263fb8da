"""
Document ingestion: chunk -> embed in batches -> persist.

Batches are committed one at a time. If a later batch fails, chunks from the
earlier batches stay in the database and the document is partially indexed.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.orm import Session

from ragchat.core.config import settings
from ragchat.core.exceptions import IngestionError
from ragchat.services import store
from ragchat.services.embedding import EmbeddingProvider, get_embedding_provider
from ragchat.services.text_chunker import chunk_text

logger = logging.getLogger(__name__)


async def ingest(
    db: Session,
    text: str,
    document_id: int,
    embedder: Optional[EmbeddingProvider] = None,
    batch_size: Optional[int] = None,
    batch_delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """
    Turn raw document text into stored, embedded chunks.

    Args:
        db: Database session
        text: Full extracted text of the document
        document_id: Pre-created document the chunks belong to
        embedder: Embedding provider (default: process singleton)
        batch_size: Chunks per embedding call (default: INGEST_BATCH_SIZE)
        batch_delay: Seconds to wait between batches (default: INGEST_BATCH_DELAY)
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        Number of chunks embedded and persisted (0 if chunking produced nothing)

    Raises:
        IngestionError: An embedding call failed; `chunks_persisted` tells how
            many chunks were stored before the failure
    """
    embedder = embedder or get_embedding_provider()
    batch_size = batch_size or settings.INGEST_BATCH_SIZE
    batch_delay = settings.INGEST_BATCH_DELAY if batch_delay is None else batch_delay

    chunks: List[str] = chunk_text(text)
    if not chunks:
        logger.info(f"Document {document_id}: no chunks produced")
        return 0

    persisted = 0
    for start in range(0, len(chunks), batch_size):
        batch = chunks[start:start + batch_size]
        try:
            vectors = await embedder.embed_batch(batch)
        except Exception as e:
            logger.error(
                f"Document {document_id}: embedding failed on batch starting at chunk {start} "
                f"({persisted} chunks already stored): {e}"
            )
            raise IngestionError(
                f"Failed to process document: {e}", chunks_persisted=persisted
            ) from e

        persisted += store.add_chunks(db, document_id, list(zip(batch, vectors)))
        logger.debug(f"Document {document_id}: stored {persisted}/{len(chunks)} chunks")

        # Throttle between batches to stay under provider rate limits
        if start + batch_size < len(chunks):
            await sleep(batch_delay)

    logger.info(f"Document {document_id}: ingested {persisted} chunks")
    return persisted
