"""Processing fee rules for settlement"""

from dataclasses import dataclass


@dataclass(frozen=True)
class FeeSchedule:
    rate: float = 0.02
    minimum: int = 5
    maximum: int = 200

    def fee_for(self, amount: float) -> int:
        """Percentage of the amount, rounded, clamped to [minimum, maximum]"""
        fee = round(amount * self.rate)
        return max(self.minimum, min(fee, self.maximum))

    @classmethod
    def from_config(cls, config) -> 'FeeSchedule':
        return cls(
            rate=float(config.get('PROCESSING_FEE_RATE', cls.rate)),
            minimum=int(config.get('PROCESSING_FEE_MIN', cls.minimum)),
            maximum=int(config.get('PROCESSING_FEE_MAX', cls.maximum)),
        )
