"""Document ingestion: extraction, chunking, and the pipeline coordinator."""

from knowledge_base.services.ingestion.chunker import TextChunker
from knowledge_base.services.ingestion.extractor import TextExtractor
from knowledge_base.services.ingestion.ingestion_service import IngestionService

__all__ = ["IngestionService", "TextChunker", "TextExtractor"]
