"""
🔥 THINK ULTRA! Estimate column role detection

Pipeline (one call, no state kept between calls):
1. raw grid -> RawTable; merged ranges -> FilledTable (display/statistics copy)
2. header row discovery on the raw table, header labels -> roles
3. column statistics over sampled body rows below the header (filled table)
4. item/desc/qty/unit: header label > heuristic argmax > positional fallback
5. size-source column: the text column richest in size notation
6. amount: header / unit-price adjacency / numeric heuristic, then verified
   against the RAW table
7. 0-based indexes -> 1-based DetectedColumnSet

Malformed input (no rows, no columns) never raises; it yields the smallest
valid answer with every role at column 1 and amount None.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Sequence, Tuple

from estimate_funnel.services.amount_resolver import AmountColumnResolver
from estimate_funnel.services.column_statistics import ColumnStatisticsBuilder, select_sample_rows
from estimate_funnel.services.header_locator import HeaderMapping, HeaderRowLocator
from estimate_funnel.services.hybrid_resolution import HybridResolutionMerger
from estimate_funnel.services.merged_cells import MergedCellFiller
from estimate_funnel.services.role_scorer import CORE_ROLES, RoleScorer, choose_size_column
from estimate_funnel.services.tables import FilledTable, RawTable
from estimate_funnel.services.thresholds import DetectionThresholds
from estimate_shared.models.estimate_columns import (
    ColumnDetectionDebug,
    ColumnDetectionResponse,
    DetectedColumnSet,
)
from estimate_shared.models.sheet_grid import MergeRange
from estimate_shared.utils.app_logger import get_logger

logger = get_logger(__name__)


def build_tables(
    grid: Sequence[Sequence[Any]],
    merged_cells: Optional[Sequence[MergeRange]] = None,
    column_count: Optional[int] = None,
) -> Tuple[RawTable, FilledTable]:
    raw = RawTable.from_grid(grid, column_count)
    return raw, MergedCellFiller.fill(raw, merged_cells)


class EstimateColumnDetector:
    def __init__(self, thresholds: Optional[DetectionThresholds] = None) -> None:
        self.thresholds = thresholds or DetectionThresholds.from_settings()

    def detect(
        self,
        grid: Sequence[Sequence[Any]],
        *,
        merged_cells: Optional[Sequence[MergeRange]] = None,
        column_count: Optional[int] = None,
    ) -> ColumnDetectionResponse:
        raw, filled = build_tables(grid, merged_cells, column_count)
        return self.detect_tables(raw, filled)

    async def detect_with_ai(
        self,
        grid: Sequence[Sequence[Any]],
        *,
        merged_cells: Optional[Sequence[MergeRange]] = None,
        column_count: Optional[int] = None,
        merger: Optional[HybridResolutionMerger] = None,
    ) -> ColumnDetectionResponse:
        """detect(), then let the AI fill what fell back to defaults (fail-open)."""
        raw, filled = build_tables(grid, merged_cells, column_count)
        response = await asyncio.to_thread(self.detect_tables, raw, filled)
        merger = merger or HybridResolutionMerger()
        return await merger.resolve_columns(response, raw, filled, self.thresholds)

    def detect_tables(self, raw: RawTable, filled: FilledTable) -> ColumnDetectionResponse:
        t = self.thresholds
        width = raw.column_count
        debug = ColumnDetectionDebug(scanned_columns=width)

        if raw.is_empty():
            debug.notes.append("empty table -> defaults")
            debug.role_sources = {role: "fallback" for role in CORE_ROLES}
            return ColumnDetectionResponse(
                columns=DetectedColumnSet(item=1, desc=1, qty=1, unit=1, size=1, amount=None),
                debug=debug,
                warnings=["Empty table: every role defaulted to column 1"],
            )

        header = HeaderRowLocator.locate(raw, t)
        mapping: Optional[HeaderMapping] = None
        start_row = 0
        if header is not None:
            mapping = HeaderRowLocator.map_roles(header.cells)
            start_row = header.row_index + 1
            debug.header_row_index = header.row_index
            debug.notes.append(f"header row {header.row_index} score={header.score} labels={mapping.matched_labels}")

        stats, sample_size = ColumnStatisticsBuilder.build(
            filled, start_row=start_row, sample_limit=t.sample_row_limit
        )
        debug.sample_size = sample_size
        debug.score_traces["columns"] = [s.as_trace() for s in stats]

        assignment = RoleScorer.assign(stats, t, width=width, header=mapping)
        debug.role_sources = {role: assignment.source(role) for role in CORE_ROLES}
        debug.score_traces.update(assignment.traces)

        amount_hint, hint_trace = RoleScorer.amount_hint(stats, t)
        debug.score_traces["amount_hint"] = hint_trace

        sample = select_sample_rows(filled.rows[start_row:], t.sample_row_limit)
        size_col, size_source, size_trace = choose_size_column(sample, stats, assignment.col("desc"), t)
        debug.score_traces["size"] = size_trace
        debug.notes.append(f"size column col{size_col + 1} ({size_source})")

        qty_col = assignment.col("qty")
        unit_col = assignment.col("unit")
        amount = AmountColumnResolver.resolve(
            raw,
            qty_col=qty_col,
            unit_col=unit_col,
            thresholds=t,
            header=mapping,
            start_row=start_row,
        )
        debug.amount_step = amount.step
        debug.amount_candidate = None if amount.candidate is None else amount.candidate + 1
        debug.amount_verified = amount.verified
        debug.rejected_candidates.extend(amount.rejected)
        debug.notes.extend(amount.notes)
        if amount_hint is not None:
            debug.notes.append(f"statistics amount hint col{amount_hint + 1}")

        columns = DetectedColumnSet(
            item=assignment.col("item") + 1,
            desc=assignment.col("desc") + 1,
            qty=qty_col + 1,
            unit=unit_col + 1,
            size=size_col + 1,
            amount=None if amount.column is None else amount.column + 1,
            header_row_index=None if header is None else header.row_index,
        )

        warnings: List[str] = []
        fallbacks = [r for r in CORE_ROLES if debug.role_sources[r] == "fallback"]
        if fallbacks:
            warnings.append(f"Positional defaults used for: {', '.join(fallbacks)}")
        if columns.amount is None:
            warnings.append("Amount column unresolved; totals must be treated as unknown")

        logger.info(
            f"Column detection: header={columns.header_row_index} item={columns.item} desc={columns.desc} "
            f"qty={columns.qty} unit={columns.unit} size={columns.size} amount={columns.amount} "
            f"amount_step={amount.step} verified={amount.verified} sources={debug.role_sources}"
        )
        return ColumnDetectionResponse(
            columns=columns,
            debug=debug,
            metadata={"rows": len(raw), "cols": width},
            warnings=warnings,
        )
