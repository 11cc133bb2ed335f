"""
도메인 예외 정의
Estimate-domain exceptions carrying a machine-readable code and details
"""

from typing import Any, Dict, List, Optional


class EstimateDomainError(Exception):
    """Base exception for the estimate domain"""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class SheetParseError(EstimateDomainError):
    """Workbook could not be read or the requested sheet could not be resolved"""

    @classmethod
    def sheet_not_found(cls, requested: str, candidates: List[str]) -> "SheetParseError":
        return cls(
            f"Sheet not found: {requested}",
            code="SHEET_NOT_FOUND",
            details={"requested": requested, "candidates": candidates},
        )

    @classmethod
    def ambiguous_sheet(cls, requested: str, candidates: List[str]) -> "SheetParseError":
        return cls(
            f"Sheet name is ambiguous: {requested}",
            code="SHEET_AMBIGUOUS",
            details={"requested": requested, "candidates": candidates},
        )
