from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
ZERO_MONEY = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def extended_cost(quantity: int, unit_cost: Decimal | int | float | str) -> Decimal:
    return to_money(Decimal(str(unit_cost)) * quantity)


def average_unit_cost(total_value: Decimal, total_quantity: int) -> Decimal:
    if total_quantity <= 0:
        return ZERO_MONEY
    return to_money(total_value / total_quantity)
