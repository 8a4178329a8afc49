"""Crew-size rules.

Two rules are in use and are intentionally kept apart: quotes size the crew
by the verified item total, while dispatch capacity and driver reporting size
it by loaded volume. They can disagree for the same booking.
"""

# (threshold, crew) pairs, highest threshold first; first match wins
PRICE_CREW_THRESHOLDS: tuple[tuple[int, int], ...] = (
    (1_000_000, 3),
    (500_000, 2),
)

VOLUME_CREW_THRESHOLDS: tuple[tuple[float, int], ...] = (
    (6.0, 3),
    (1.5, 2),
)


def crew_size_for_price(items_total: int) -> int:
    for threshold, crew in PRICE_CREW_THRESHOLDS:
        if items_total >= threshold:
            return crew
    return 1


def crew_size_for_volume(total_volume: float) -> int:
    """Crew suggested for a stop or route by its loaded volume in m³."""
    for threshold, crew in VOLUME_CREW_THRESHOLDS:
        if total_volume >= threshold:
            return crew
    return 1
