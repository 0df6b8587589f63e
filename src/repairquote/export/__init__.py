"""
Repair Quote Export Module

Shareable text rendering of a computed budget.
"""

from repairquote.export.message import format_brl, format_usd, render_budget_text

__all__ = [
    "format_brl",
    "format_usd",
    "render_budget_text",
]
