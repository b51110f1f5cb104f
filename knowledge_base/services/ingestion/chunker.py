"""Text chunking with overlapping windows and sentence boundary preference.

Splits cleaned document text into :class:`~knowledge_base.models.knowledge.Chunk`
objects sized for the embedding model (default ~500 tokens with a ~50-token
overlap, at four characters per token).

Each window ends, in order of preference:

1. just after the last ``.``, ``?`` or ``!`` in the final ~100 characters,
2. at the last space in that tail,
3. at the raw character budget.

Consecutive windows overlap so that a sentence straddling a boundary is
fully contained in at least one chunk.  The algorithm is deterministic:
the same text and budgets always produce the same boundaries.
"""

from __future__ import annotations

import structlog

from knowledge_base.models.knowledge import Chunk
from knowledge_base.utils.text import CHARS_PER_TOKEN, clean_text, estimate_tokens

logger = structlog.get_logger(logger_name=__name__)

# How far back from the tentative end a boundary may be searched for.
_BOUNDARY_WINDOW = 100
_SENTENCE_TERMINALS = ".?!"


class TextChunker:
    """Splits text into overlapping chunks that prefer sentence boundaries.

    Parameters
    ----------
    max_tokens:
        Default token budget per chunk (default 500).
    overlap_tokens:
        Default token overlap between consecutive chunks (default 50).
    """

    def __init__(self, max_tokens: int = 500, overlap_tokens: int = 50) -> None:
        _validate(max_tokens, overlap_tokens)
        self._max_tokens = max_tokens
        self._overlap_tokens = overlap_tokens

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(
        self,
        text: str,
        max_tokens: int | None = None,
        overlap_tokens: int | None = None,
    ) -> list[Chunk]:
        """Split *text* into overlapping :class:`Chunk` objects.

        Parameters
        ----------
        text:
            Raw extracted text.  Whitespace runs are collapsed first.
        max_tokens:
            Override of the per-chunk token budget.
        overlap_tokens:
            Override of the token overlap.

        Returns
        -------
        list[Chunk]
            Chunks with indices ``0..N-1``, each reporting ``total_chunks == N``.
            Empty or whitespace-only input returns an empty list.

        Raises
        ------
        ValueError
            If ``max_tokens <= 0`` or ``overlap_tokens < 0``.
        """
        max_tokens = self._max_tokens if max_tokens is None else max_tokens
        overlap_tokens = self._overlap_tokens if overlap_tokens is None else overlap_tokens
        _validate(max_tokens, overlap_tokens)

        cleaned = clean_text(text or "")
        if not cleaned:
            return []

        pieces = self._split(
            cleaned,
            max_chars=max_tokens * CHARS_PER_TOKEN,
            overlap_chars=overlap_tokens * CHARS_PER_TOKEN,
        )

        # Second pass: the total is only known once the text is consumed.
        total = len(pieces)
        chunks = [
            Chunk(text=piece, chunk_index=i, total_chunks=total)
            for i, piece in enumerate(pieces)
        ]

        logger.debug(
            "chunking_complete",
            num_chunks=total,
            text_chars=len(cleaned),
            estimated_tokens=estimate_tokens(cleaned),
            max_tokens=max_tokens,
            overlap_tokens=overlap_tokens,
        )
        return chunks

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _split(text: str, max_chars: int, overlap_chars: int) -> list[str]:
        pieces: list[str] = []
        length = len(text)
        start = 0

        while start < length:
            end = start + max_chars

            if end < length:
                end = _find_boundary(text, start, end)

            piece = text[start:end].strip()
            if piece:
                pieces.append(piece)

            if end >= length:
                break

            next_start = end - overlap_chars
            # Overlap as large as the chunk would stall the loop.
            start = next_start if next_start > start else end

        return pieces


def _find_boundary(text: str, start: int, end: int) -> int:
    """Pick the cut position for a window ending at *end*."""
    search_start = max(end - _BOUNDARY_WINDOW, start)

    for idx in range(end - 1, search_start, -1):
        if text[idx] in _SENTENCE_TERMINALS:
            return idx + 1

    space = text.rfind(" ", search_start + 1, end + 1)
    if space > search_start:
        return space

    return end


def _validate(max_tokens: int, overlap_tokens: int) -> None:
    if max_tokens <= 0:
        raise ValueError(f"max_tokens must be positive, got {max_tokens}")
    if overlap_tokens < 0:
        raise ValueError(f"overlap_tokens must be non-negative, got {overlap_tokens}")
