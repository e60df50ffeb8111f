"""Integer money arithmetic.

All amounts are int cents and all percentages are int basis points
(10000 bps = 100%). No float, no Decimal.
"""

BPS_DENOMINATOR = 10000


def validate_bps(bps: int) -> None:
    """Validate that a percentage in basis points is within [0, 10000]."""
    if not (0 <= bps <= BPS_DENOMINATOR):
        raise ValueError(f"Basis points must be between 0 and 10000, got {bps}")


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 6500 -> '$65.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"


def bps_to_display(bps: int) -> str:
    """2000 -> '20%', 1250 -> '12.5%'."""
    whole, frac = divmod(bps, 100)
    if frac == 0:
        return f"{whole}%"
    return f"{whole}.{frac:02d}".rstrip("0") + "%"


def calculate_fee(gross_cents: int, cut_bps: int) -> int:
    """Platform fee on one session, rounded half-up to the cent.

    fee = round_half_up(gross * bps / 10000)
    Integer form for non-negative inputs: (gross * bps + 5000) // 10000
    """
    if gross_cents < 0:
        raise ValueError(f"Gross amount must be non-negative, got {gross_cents}")
    validate_bps(cut_bps)
    if gross_cents == 0 or cut_bps == 0:
        return 0
    return (gross_cents * cut_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR
