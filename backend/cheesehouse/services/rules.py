import random

from cheesehouse.settings import GameSettings


# Differences below this are logged for audit but still accepted
SUSPICIOUS_DIFFERENCE = 0.01
# Decimal places kept when comparing a difference with the tolerance
WIN_PRECISION = 6


class GameDataInvalid(ValueError):
    pass


class GameRules:
    """Pure timing rules: range checks, win/lose decision, target generation."""

    def __init__(self, settings: GameSettings):
        self.settings = settings

    @staticmethod
    def difference(target_time: float, achieved_time: float) -> float:
        return abs(achieved_time - target_time)

    def validate(self, target_time: float, achieved_time: float) -> None:
        s = self.settings
        if not s.min_target_time <= target_time <= s.max_target_time:
            raise GameDataInvalid(
                f'target time out of range ({s.min_target_time:.1f}-{s.max_target_time:.1f}s)'
            )
        if not 0 <= achieved_time <= s.max_achieved_time:
            raise GameDataInvalid(f'suspicious achieved time: {achieved_time:.2f}s')

    def is_win(self, target_time: float, achieved_time: float) -> bool:
        # Inclusive boundary: 19.9 vs 20.0 counts exactly like 10.0 vs 10.1
        return round(self.difference(target_time, achieved_time), WIN_PRECISION) <= self.settings.tolerance

    def is_suspicious(self, target_time: float, achieved_time: float) -> bool:
        diff = self.difference(target_time, achieved_time)
        return 0 < diff < SUSPICIOUS_DIFFERENCE

    def generate_target(self, rng=random) -> float:
        s = self.settings
        value = s.min_target_time + rng.random() * (s.max_target_time - s.min_target_time)
        return round(value, 1)
