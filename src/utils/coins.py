# coding: utf-8
"""
Coin arithmetic helpers

Coins are integers, every derived amount is floored. Decimal keeps
0.7 / 20% style rates free of float drift (35 * 0.3 must be 10, not 10.499...).
"""
from decimal import Decimal, ROUND_FLOOR
from typing import Tuple, Union

Rate = Union[int, float, str, Decimal]


def floor_coins(value: Decimal) -> int:
    """Round a decimal amount down to whole coins"""
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def net_after_commission(gross: int, commission_rate: Rate) -> Tuple[int, int]:
    """
    Split a gross amount into (net payout, platform fee)

    Args:
        gross: Gross price in coins
        commission_rate: Platform share as a fraction, e.g. 0.7

    Returns:
        (net, fee) where net = floor(gross * (1 - rate)) and fee = gross - net
    """
    rate = Decimal(str(commission_rate))
    net = floor_coins(Decimal(gross) * (Decimal(1) - rate))
    return net, gross - net


def net_after_fee_percentage(gross: int, fee_percentage: int) -> Tuple[int, int]:
    """Same as net_after_commission with the fee given in percent (20 -> 20%)"""
    return net_after_commission(gross, Decimal(fee_percentage) / Decimal(100))


def percent_of(amount: int, percent: Rate) -> int:
    """floor(amount * percent / 100)"""
    return floor_coins(Decimal(amount) * Decimal(str(percent)) / Decimal(100))
