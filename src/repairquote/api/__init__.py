"""
Repair Quote API Module
"""

from repairquote.api.routes import router
from repairquote.api.schemas import (
    BudgetResponse,
    ErrorResponse,
    HealthResponse,
    RateResponse,
    SourceInfo,
)

__all__ = [
    "router",
    "RateResponse",
    "BudgetResponse",
    "SourceInfo",
    "HealthResponse",
    "ErrorResponse",
]
