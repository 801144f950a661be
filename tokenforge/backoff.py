# backoff.py (delay schedule for endpoint fallback and payment polling)

from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential delay schedule with a cap and a bounded number of attempts.

    Used for the pause between RPC endpoint fallbacks and for the payment
    verifier's polling loop.
    """

    base_delay: float = 2.0
    multiplier: float = 1.2
    max_delay: float = 8.0
    max_attempts: int = 20

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the zero-based ``attempt`` failed."""
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

    def schedule(self):
        return [self.delay(i) for i in range(self.max_attempts)]
