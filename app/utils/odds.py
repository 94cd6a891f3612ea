from typing import Iterable


def round_money(value: float) -> float:
    return round(float(value) + 1e-9, 2)


def combined_odds(odds: Iterable[float]) -> float:
    total = 1.0
    for price in odds:
        total *= float(price)
    return round_money(total)


def calculate_payout(stake: float, decimal_odds: float) -> float:
    return round_money(float(stake) * float(decimal_odds))


def settlement_payout(stake: float, decimal_odds: float, won: bool) -> float:
    if not won:
        return 0.0
    return calculate_payout(stake, decimal_odds)


def strip_price_suffix(label: str) -> str:
    # "Under 2.5 @ 1.7" -> "Under 2.5"
    if label and " @ " in label:
        return label.split(" @ ")[0].strip()
    return (label or "").strip()
