"""
Sheet grid extraction models.

A spreadsheet (Excel upload or a JSON grid) is represented as a rectangular
grid of cell strings plus merged-cell ranges, so the column detector and the
line-item summary operate on one standard format.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MergeRange(BaseModel):
    """Merged cell range (0-based, inclusive)."""

    top: int = Field(..., ge=0)
    left: int = Field(..., ge=0)
    bottom: int = Field(..., ge=0)
    right: int = Field(..., ge=0)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="after")
    def _check_order(self) -> "MergeRange":
        if self.bottom < self.top or self.right < self.left:
            raise ValueError("merge range must have bottom >= top and right >= left")
        return self

    def contains(self, row: int, col: int) -> bool:
        return self.top <= row <= self.bottom and self.left <= col <= self.right


class SheetGrid(BaseModel):
    """Normalized sheet representation (0-based coordinates)."""

    source: Literal["excel", "json", "unknown"] = "unknown"
    sheet_name: Optional[str] = None

    grid: List[List[str]] = Field(default_factory=list, description="Rectangular 2D grid of cell text")
    merged_cells: List[MergeRange] = Field(
        default_factory=list, description="Merged cell ranges (0-based, inclusive)"
    )
    column_count: int = Field(default=0, ge=0, description="Sheet width, even beyond sampled rows")

    metadata: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class SheetListResponse(BaseModel):
    """Sheet names of an uploaded workbook."""

    sheet_names: List[str] = Field(default_factory=list)
    default_sheet: Optional[str] = None

    model_config = ConfigDict(extra="ignore")
