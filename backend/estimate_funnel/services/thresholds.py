"""
Tuned detection constants as one immutable value.

Defaults come from ColumnDetectionSettings (env: ESTIMATE_*); a request may
override any of them through its `options` dict. Unknown keys are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from estimate_shared.config.settings import ColumnDetectionSettings, get_settings


@dataclass(frozen=True)
class DetectionThresholds:
    header_scan_rows: int = 40
    header_min_cells: int = 3
    header_min_score: int = 2
    header_digit_threshold: int = 6
    header_digit_penalty: int = 2

    sample_row_limit: int = 300
    min_non_empty: int = 10
    numeric_ratio_floor: float = 0.6
    text_ratio_floor: float = 0.5
    unit_short_text_len: float = 6.0
    item_max_avg_len: float = 18.0
    item_min_unique: int = 10
    desc_min_avg_len: float = 18.0

    amount_right_percentile: float = 0.6
    size_column_min_score: float = 5.0

    dimension_upper_bound_mm: int = 20000
    meters_decimal_ceiling: float = 20.0

    ai_sample_rows: int = 60

    @classmethod
    def from_settings(cls, detection: Optional[ColumnDetectionSettings] = None) -> "DetectionThresholds":
        cfg = detection or get_settings().detection
        return cls(**{f.name: getattr(cfg, f.name) for f in fields(cls) if hasattr(cfg, f.name)})

    @classmethod
    def from_options(
        cls,
        options: Optional[Dict[str, Any]] = None,
        *,
        base: Optional["DetectionThresholds"] = None,
    ) -> "DetectionThresholds":
        """Apply per-request overrides; values are coerced to the field's type."""
        current = base or cls.from_settings()
        if not options:
            return current
        updates: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in options or options[f.name] is None:
                continue
            caster = int if isinstance(getattr(current, f.name), int) else float
            try:
                updates[f.name] = caster(options[f.name])
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid option {f.name}={options[f.name]!r}") from e
        return replace(current, **updates) if updates else current
