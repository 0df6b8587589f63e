"""
Shareable Budget Message

Renders the quote as the WhatsApp-style text the shop sends to the customer.
Amounts use pt-BR BRL formatting; the part cost uses en-US USD formatting.
"""

from decimal import Decimal

from repairquote.computation.money import format_rate, round2


def _group(value: Decimal, thousands: str, decimal_point: str) -> str:
    """Format a non-negative amount with 2 decimals and the given separators."""
    text = f"{round2(value):,.2f}"  # en-US: 1,234.56
    return text.replace(",", "\0").replace(".", decimal_point).replace("\0", thousands)


def format_brl(value: Decimal) -> str:
    """pt-BR currency: R$ 1.234,56"""
    sign = "-" if value < 0 else ""
    return f"{sign}R$ {_group(abs(value), '.', ',')}"


def format_usd(value: Decimal) -> str:
    """en-US currency: $1,234.56"""
    sign = "-" if value < 0 else ""
    return f"{sign}${_group(abs(value), ',', '.')}"


def render_budget_text(
    customer_name: str,
    service: str,
    device_model: str,
    part_cost_usd: Decimal,
    exchange_rate: Decimal,
    shipping: Decimal,
    labor: Decimal,
    subtotal: Decimal,
    total: Decimal
) -> str:
    lines = [
        f"📝 *Orçamento para {customer_name}*",
        f"🛠️ *Serviço:* {service}",
        f"📱 *Modelo:* {device_model}",
        f"💵 *Valor da peça em dólar:* {format_usd(part_cost_usd)}",
        f"💰 *Cotação do dólar (USD → BRL):* R$ {format_rate(exchange_rate)}",
        f"🚚 *Frete:* {format_brl(shipping)}",
        f"🛠️ *Mão de obra:* {format_brl(labor)}",
        f"🔖 *Valor sem mão de obra:* {format_brl(subtotal)}",
        f"🔖 *Valor total:* {format_brl(total)}",
        "",
        "*A mão de obra pode ser parcelada ou paga até um mês após o serviço.*",
        "*Cotação baseada no mercado da região leste do Paraguai.*",
    ]
    return "\n".join(lines)
