"""
Token amount conversion.

The contract reports token amounts as fixed-point integers (minor units);
display code works with Decimal values.
"""

from decimal import Decimal, InvalidOperation, localcontext

from memberchain.config.constants import DEFAULT_TOKEN_DECIMALS


def format_token_amount(
    amount: int | str | None, decimals: int = DEFAULT_TOKEN_DECIMALS
) -> Decimal:
    """
    Convert minor units to a display Decimal.

    Args:
        amount: Fixed-point integer amount (int or numeric string)
        decimals: Token decimal precision

    Returns:
        Display amount, Decimal("0") for unparsable input

    Examples:
        >>> format_token_amount(10_500_000, 6)
        Decimal('10.500000')
    """
    if amount is None:
        return Decimal("0")
    try:
        raw = int(amount)
    except (TypeError, ValueError):
        return Decimal("0")
    # Exact for full uint256 range (no context rounding)
    return Decimal(f"{raw}E-{decimals}")


def parse_token_amount(
    amount: Decimal | str | int | float, decimals: int = DEFAULT_TOKEN_DECIMALS
) -> int:
    """
    Convert a display amount to minor units.

    Args:
        amount: Human readable amount
        decimals: Token decimal precision

    Returns:
        Fixed-point integer amount

    Raises:
        ValueError: If amount is not a number, negative, or has more
            fractional digits than the token supports
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"Invalid token amount: {amount!r}") from e

    if not value.is_finite() or value < 0:
        raise ValueError(f"Invalid token amount: {amount!r}")

    # Enough precision to keep every digit of the scaled coefficient
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(value.as_tuple().digits) + decimals)
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {amount} has more than {decimals} decimal places"
        )
    return int(scaled)
