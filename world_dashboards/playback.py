from dataclasses import dataclass, replace

from .config import MAX_YEAR, MIN_YEAR
from .formatting import round_half_up


def year_from_ratio(ratio: float) -> int:
    """Slider position in [0, 1] to a year; out-of-range positions are clamped."""
    ratio = max(0.0, min(1.0, ratio))
    return round_half_up(MIN_YEAR + ratio * (MAX_YEAR - MIN_YEAR))


def year_to_ratio(year: int) -> float:
    return (year - MIN_YEAR) / (MAX_YEAR - MIN_YEAR)


@dataclass(frozen=True)
class PlaybackState:
    """Current year cursor of the motion chart and whether it is animating."""

    current_year: int = MIN_YEAR
    playing: bool = False

    def toggled(self) -> "PlaybackState":
        return replace(self, playing=not self.playing)

    def stopped(self) -> "PlaybackState":
        return replace(self, playing=False)

    def tick(self) -> "PlaybackState":
        # one timer tick; wraps to the first year after the last
        if not self.playing:
            return self
        year = self.current_year + 1
        if year > MAX_YEAR:
            year = MIN_YEAR
        return replace(self, current_year=year)

    def seek(self, ratio: float) -> "PlaybackState":
        return PlaybackState(current_year=year_from_ratio(ratio), playing=False)
