"""
Dimension extraction models.

All dimensions are integer millimetres. A field is either present or absent;
absence is never reported as zero.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SizeSource = Literal["rule", "ai", "rule+ai", "none"]
AIStatus = Literal["skipped", "ok", "failed", "disabled"]

DIMENSION_FIELDS = ("height_mm", "wide_mm", "length_mm", "overlap_mm")


class SizeResult(BaseModel):
    """Dimensions parsed from one free-text cell."""

    height_mm: Optional[int] = Field(default=None, ge=0)
    wide_mm: Optional[int] = Field(default=None, ge=0)
    length_mm: Optional[int] = Field(default=None, ge=0)
    overlap_mm: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="ignore", frozen=True)

    def has_primary_dimension(self) -> bool:
        """True when height, width or length was found (overlap alone does not count)."""
        return self.height_mm is not None or self.wide_mm is not None or self.length_mm is not None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in DIMENSION_FIELDS)

    def format(self) -> str:
        """
        Display string, e.g. "300×300 L=1200 重ね=100".

        Width and height are shown as a pair when both are present.
        """
        parts: List[str] = []
        if self.wide_mm is not None and self.height_mm is not None:
            parts.append(f"{self.wide_mm}×{self.height_mm}")
        else:
            if self.wide_mm is not None:
                parts.append(f"W={self.wide_mm}")
            if self.height_mm is not None:
                parts.append(f"H={self.height_mm}")
        if self.length_mm is not None:
            parts.append(f"L={self.length_mm}")
        if self.overlap_mm is not None:
            parts.append(f"重ね={self.overlap_mm}")
        return " ".join(parts)


class AISizeEstimate(BaseModel):
    """Validated per-row output of the inference service (trusted domain side)."""

    index: int
    size: SizeResult = Field(default_factory=SizeResult)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    notes: List[str] = Field(default_factory=list)
    dropped_fields: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class SizeExtractionRow(BaseModel):
    index: int = Field(..., description="Caller-chosen row key (e.g. sheet row index)")
    text: str = Field(default="")

    model_config = ConfigDict(extra="ignore")


class SizeExtractionRequest(BaseModel):
    """Batch dimension extraction request."""

    rows: List[SizeExtractionRow] = Field(default_factory=list)
    use_ai: bool = Field(default=False, description="Send rows the rules could not resolve to the LLM")
    options: Dict[str, Any] = Field(default_factory=dict, description="Per-request threshold overrides")

    model_config = ConfigDict(extra="ignore")


class HybridSizeResolution(BaseModel):
    """Rule-first / AI-fallback merge output."""

    sizes: Dict[int, SizeResult] = Field(default_factory=dict)
    sources: Dict[int, SizeSource] = Field(default_factory=dict)
    ai_status: AIStatus = "skipped"
    ai_error: Optional[str] = None
    ai_requested_rows: List[int] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class SizeExtractionResponse(HybridSizeResolution):
    """HTTP response for batch dimension extraction."""

    formatted: Dict[int, str] = Field(default_factory=dict)
