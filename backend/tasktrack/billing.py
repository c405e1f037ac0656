from __future__ import annotations

from .utils import round2


def billable_amount(duration: float, billable: bool, hourly_rate: float) -> float:
    """Amount charged for ``duration`` hours; zero for non-billable work."""
    if not billable:
        return 0.0
    return round2(float(duration) * float(hourly_rate or 0))
