"""
Budget Calculator - Convert a USD part cost into a BRL repair quote
"""

from decimal import Decimal

from repairquote.computation.money import round2
from repairquote.export.message import render_budget_text
from repairquote.models import Budget, BudgetRequest


class BudgetCalculator:
    """
    Compute the repair quote.

    part_cost_brl = part_cost_usd × rate
    subtotal      = round2(part_cost_brl + shipping)          (without labour)
    total         = round2(part_cost_brl + shipping + labor)
    """

    def __init__(self, default_rate: Decimal):
        self.default_rate = default_rate

    def effective_rate(self, request: BudgetRequest) -> Decimal:
        """Rate given on the form, or the default when missing or zero."""
        if request.exchange_rate:
            return request.exchange_rate
        return self.default_rate

    def calculate(self, request: BudgetRequest) -> Budget:
        rate = self.effective_rate(request)
        part_cost_brl = request.part_cost_usd * rate
        subtotal = round2(part_cost_brl + request.shipping)
        total = round2(part_cost_brl + request.shipping + request.labor)

        text = render_budget_text(
            customer_name=request.customer_name,
            service=request.service,
            device_model=request.device_model,
            part_cost_usd=request.part_cost_usd,
            exchange_rate=rate,
            shipping=request.shipping,
            labor=request.labor,
            subtotal=subtotal,
            total=total,
        )

        return Budget(
            customer_name=request.customer_name,
            service=request.service,
            device_model=request.device_model,
            part_cost_usd=request.part_cost_usd,
            exchange_rate=rate,
            shipping=request.shipping,
            labor=request.labor,
            part_cost_brl=part_cost_brl,
            subtotal=subtotal,
            total=total,
            text=text,
        )
