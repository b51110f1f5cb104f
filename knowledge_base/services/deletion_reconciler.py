"""Best-effort removal of every vector belonging to one document.

Vector ids are deterministic (``<source_id>_chunk_<i>``), but the chunk
count recorded in metadata may be missing or stale, and not every vector
database can delete by metadata filter.  Deletion therefore runs in two
phases followed by a check:

1. **Id sweep** -- delete ``<source_id>_chunk_0 .. N-1`` in batches, where
   ``N = max(1000, expected_chunks)``.  Unknown ids are not an error.
2. **Similarity probes** -- query the namespace with filler vectors
   (uniform +0.1, uniform -0.1, all zeros) restricted to the source id,
   delete whatever comes back, and page again while pages come back full
   and keep producing new ids.
3. **Verification** -- one more probe.  Anything still found is reported
   as a :class:`PartialDeletionWarning`; it is raised only in strict mode.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from knowledge_base.models.knowledge import DeletionReport, vector_id
from knowledge_base.utils.errors import KnowledgeBaseError, PartialDeletionWarning

if TYPE_CHECKING:
    from knowledge_base.interfaces.vector_index_provider import IVectorIndexProvider

logger = structlog.get_logger(logger_name=__name__)

_PROBE_FILL_VALUES = (0.1, -0.1, 0.0)


class DeletionReconciler:
    """Removes a document's vectors from one namespace.

    Parameters
    ----------
    vector_index:
        Index to delete from.
    dimension:
        Embedding dimension, used to build the probe vectors.
    min_id_sweep:
        Minimum number of deterministic ids tried in phase 1.
    batch_size:
        Ids per delete call in phase 1.
    probe_top_k:
        Page size of each similarity probe.
    max_probe_rounds:
        Upper bound on pages fetched per probe vector.
    strict:
        Raise :class:`PartialDeletionWarning` instead of only reporting it.
    """

    def __init__(
        self,
        vector_index: IVectorIndexProvider,
        dimension: int,
        min_id_sweep: int = 1000,
        batch_size: int = 100,
        probe_top_k: int = 1000,
        max_probe_rounds: int = 10,
        strict: bool = False,
    ) -> None:
        self._vector_index = vector_index
        self._dimension = dimension
        self._min_id_sweep = min_id_sweep
        self._batch_size = max(1, batch_size)
        self._probe_top_k = probe_top_k
        self._max_probe_rounds = max(1, max_probe_rounds)
        self._strict = strict

    async def delete(
        self,
        source_id: str,
        namespace: str,
        expected_chunks: int | None = None,
    ) -> DeletionReport:
        """Delete every vector of *source_id* in *namespace* and report the outcome."""
        log = logger.bind(source_id=source_id, namespace=namespace)

        swept = await self._sweep_ids(source_id, namespace, expected_chunks, log)
        discovered = await self._probe_and_delete(source_id, namespace, log)
        remaining, verified = await self._verify(source_id, namespace, log)

        report = DeletionReport(
            source_id=source_id,
            namespace=namespace,
            phase_one_ids=swept,
            phase_two_ids=discovered,
            remaining_ids=remaining,
            verified=verified,
        )

        if report.complete:
            log.info(
                "vectors_deleted",
                phase_one_ids=swept,
                phase_two_ids=len(discovered),
            )
            return report

        warning = PartialDeletionWarning(
            message=(
                f"Could not confirm deletion of all vectors for {source_id}: "
                f"{len(remaining)} remaining"
                + ("" if verified else " (verification probe failed)")
            ),
            provider_name=self._vector_index.get_provider_name(),
            remaining_ids=remaining,
        )
        log.warning(
            "partial_deletion",
            remaining=len(remaining),
            verified=verified,
            sample_ids=remaining[:5],
        )
        if self._strict:
            raise warning
        return report

    # ------------------------------------------------------------------
    # Phase 1: deterministic id sweep
    # ------------------------------------------------------------------

    async def _sweep_ids(
        self,
        source_id: str,
        namespace: str,
        expected_chunks: int | None,
        log: structlog.BoundLogger,
    ) -> int:
        count = max(self._min_id_sweep, expected_chunks or 0)
        ids = [vector_id(source_id, i) for i in range(count)]

        failed_batches = 0
        for start in range(0, len(ids), self._batch_size):
            batch = ids[start : start + self._batch_size]
            try:
                await self._vector_index.delete(namespace, batch)
            except KnowledgeBaseError as exc:
                failed_batches += 1
                log.warning("id_sweep_batch_failed", batch_start=start, error=str(exc))

        log.debug("id_sweep_complete", ids=count, failed_batches=failed_batches)
        return count

    # ------------------------------------------------------------------
    # Phase 2: similarity probes
    # ------------------------------------------------------------------

    def _probe_vectors(self) -> list[list[float]]:
        return [[fill] * self._dimension for fill in _PROBE_FILL_VALUES]

    async def _probe_and_delete(
        self,
        source_id: str,
        namespace: str,
        log: structlog.BoundLogger,
    ) -> list[str]:
        deleted: list[str] = []
        seen: set[str] = set()

        for probe_index, probe in enumerate(self._probe_vectors()):
            for round_number in range(self._max_probe_rounds):
                try:
                    matches = await self._vector_index.query(
                        namespace,
                        probe,
                        self._probe_top_k,
                        filter={"source_id": source_id},
                    )
                except KnowledgeBaseError as exc:
                    log.warning("deletion_probe_failed", probe=probe_index, error=str(exc))
                    break

                new_ids = [
                    m.id
                    for m in matches
                    if m.metadata.get("source_id") == source_id and m.id not in seen
                ]
                if not new_ids:
                    break

                seen.update(new_ids)
                try:
                    await self._vector_index.delete(namespace, new_ids)
                except KnowledgeBaseError as exc:
                    log.warning(
                        "deletion_probe_delete_failed",
                        probe=probe_index,
                        ids=len(new_ids),
                        error=str(exc),
                    )
                    break
                deleted.extend(new_ids)

                log.debug(
                    "deletion_probe_round",
                    probe=probe_index,
                    round=round_number,
                    deleted=len(new_ids),
                )
                if len(matches) < self._probe_top_k:
                    break

        return deleted

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def _verify(
        self,
        source_id: str,
        namespace: str,
        log: structlog.BoundLogger,
    ) -> tuple[list[str], bool]:
        """Return ``(remaining_ids, verified)``."""
        try:
            matches = await self._vector_index.query(
                namespace,
                self._probe_vectors()[0],
                self._probe_top_k,
                filter={"source_id": source_id},
            )
        except KnowledgeBaseError as exc:
            log.warning("deletion_verification_failed", error=str(exc))
            return [], False
        return [m.id for m in matches if m.metadata.get("source_id") == source_id], True
