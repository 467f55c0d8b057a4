"""Detail-call budget for one refresh."""


class EnrichmentBudget:
    """
    Caps detail calls per refresh and per owner per day.

    Owned by a single refresh, so it needs no locking. The daily figure
    is read from the store before the refresh and written back after.

    Usage:
        budget = EnrichmentBudget(max_calls=15, daily_limit=90, used_today=12)
        while budget.try_acquire():
            ...
    """

    def __init__(self, max_calls: int, daily_limit: int, used_today: int = 0):
        self.max_calls = max(0, max_calls)
        self.daily_limit = max(0, daily_limit)
        self.used_today = max(0, used_today)
        self.calls_used = 0

    @property
    def remaining(self) -> int:
        per_refresh = self.max_calls - self.calls_used
        per_day = self.daily_limit - self.used_today - self.calls_used
        return max(0, min(per_refresh, per_day))

    def try_acquire(self) -> bool:
        """Reserve one call. Returns False once either cap is reached."""
        if self.remaining <= 0:
            return False
        self.calls_used += 1
        return True
