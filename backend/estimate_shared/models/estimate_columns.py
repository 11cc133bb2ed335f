"""
Column role detection and line-item summary models.

Column indices in DetectedColumnSet are 1-based (spreadsheet convention);
header_row_index is 0-based.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from estimate_shared.models.sheet_grid import MergeRange
from estimate_shared.models.sizes import AIStatus, SizeResult

RoleSource = Literal["header", "heuristic", "fallback", "ai"]
AmountStep = Literal["header", "unit_price_adjacent", "heuristic", "ai", "none"]


class DetectedColumnSet(BaseModel):
    """Role -> column assignment. Every role but amount is always resolved."""

    item: int = Field(..., ge=1)
    desc: int = Field(..., ge=1)
    qty: int = Field(..., ge=1)
    unit: int = Field(..., ge=1)
    size: int = Field(..., ge=1, description="Column whose text carries size notation")
    amount: Optional[int] = Field(default=None, ge=1, description="None means unknown, never zero")
    header_row_index: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="ignore")


class ColumnDetectionDebug(BaseModel):
    """Observability metadata; not needed for correctness."""

    sample_size: int = 0
    scanned_columns: int = 0
    header_row_index: Optional[int] = None
    role_sources: Dict[str, RoleSource] = Field(default_factory=dict)
    amount_step: AmountStep = "none"
    amount_candidate: Optional[int] = Field(default=None, description="1-based column before verification")
    amount_verified: bool = False
    rejected_candidates: List[Dict[str, Any]] = Field(default_factory=list)
    score_traces: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    notes: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class ColumnDetectionRequest(BaseModel):
    """Column detection on a raw 2D grid."""

    grid: List[List[Any]] = Field(..., description="Raw sheet grid (rows x columns)")
    merged_cells: Optional[List[MergeRange]] = Field(
        default=None, description="Optional merged cell ranges (0-based inclusive)"
    )
    column_count: Optional[int] = Field(default=None, ge=0, description="Sheet width if wider than the grid")
    use_ai: bool = Field(default=False, description="Ask the LLM for roles that fell back to defaults")
    options: Dict[str, Any] = Field(default_factory=dict, description="Per-request threshold overrides")

    model_config = ConfigDict(extra="ignore")


class ColumnDetectionResponse(BaseModel):
    columns: DetectedColumnSet
    debug: ColumnDetectionDebug = Field(default_factory=ColumnDetectionDebug)
    ai_status: AIStatus = "skipped"
    ai_error: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class ManualColumnOverride(BaseModel):
    """User-chosen columns (1-based); clamped into the sheet width."""

    item: int = Field(..., ge=1)
    desc: int = Field(..., ge=1)
    qty: int = Field(..., ge=1)
    unit: int = Field(..., ge=1)
    size: int = Field(..., ge=1)
    amount: Optional[int] = Field(default=None, ge=1)
    header_row_index: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="ignore")


class LineItemSummaryRequest(BaseModel):
    grid: List[List[Any]] = Field(...)
    merged_cells: Optional[List[MergeRange]] = None
    query: str = Field(default="", description="Whitespace-separated tokens; all must match")
    columns: Optional[ManualColumnOverride] = Field(default=None, description="Skip detection and use these")
    hide_zero_amount: bool = Field(default=False)
    preview_limit: int = Field(default=30, ge=0, le=5000)
    show_all: bool = Field(default=False)
    options: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class LineItem(BaseModel):
    row_index: int = Field(..., ge=0, description="0-based sheet row")
    item: str = ""
    desc: str = ""
    qty: float = 0.0
    unit: str = ""
    amount: Optional[float] = None
    size: SizeResult = Field(default_factory=SizeResult)
    size_text: str = ""
    calc_m2: Optional[float] = Field(default=None, description="Area for rows measured in metres")

    model_config = ConfigDict(extra="ignore")


class LineItemSummary(BaseModel):
    columns: DetectedColumnSet
    column_source: Literal["detected", "manual"] = "detected"
    matched_count: int = 0
    sums_by_unit: Dict[str, float] = Field(default_factory=dict)
    sum_m2: float = 0.0
    preview: List[LineItem] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
