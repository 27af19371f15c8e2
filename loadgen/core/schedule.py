"""
Ramping VU schedule.

Stages run strictly in sequence. Within a stage the target VU count moves
linearly from the previous stage's target (0 before the first stage) to the
stage's own target.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from loadgen.models import Stage

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")

_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration such as "5m", "1h30m", "500ms" or a bare number of seconds.

    Raises:
        ValueError: if the value cannot be parsed
    """
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value or "").strip().lower()
    if not text:
        raise ValueError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for m in _DURATION_PART_RE.finditer(text):
        if m.start() != pos:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    seconds = float(seconds)
    if seconds < 1 and seconds > 0:
        return f"{int(round(seconds * 1000))}ms"
    whole = int(seconds)
    h, rem = divmod(whole, 3600)
    m, s = divmod(rem, 60)
    out = ""
    if h:
        out += f"{h}h"
    if m:
        out += f"{m}m"
    if s or not out:
        out += f"{s}s"
    return out


def parse_stage(text: str) -> Stage:
    """Parse a "duration:target" stage such as "5m:10"."""
    raw = str(text or "").strip()
    duration_part, sep, target_part = raw.rpartition(":")
    if not sep or not duration_part or not target_part:
        raise ValueError(f"stage must look like DURATION:TARGET, got {text!r}")
    try:
        target = int(target_part)
    except ValueError as e:
        raise ValueError(f"invalid stage target in {text!r}") from e
    return Stage(duration_seconds=parse_duration(duration_part), target=target)


# Reference schedule: 60 minutes, peak of 50 VUs.
DEFAULT_STAGES: tuple[Stage, ...] = (
    # Warm-up
    Stage(duration_seconds=5 * 60, target=10),
    # Steady load
    Stage(duration_seconds=20 * 60, target=10),
    # Ramp up
    Stage(duration_seconds=5 * 60, target=30),
    # Peak load
    Stage(duration_seconds=15 * 60, target=30),
    # Spike
    Stage(duration_seconds=2 * 60, target=50),
    # Spike sustained
    Stage(duration_seconds=3 * 60, target=50),
    # Cool down
    Stage(duration_seconds=5 * 60, target=10),
    # Final steady
    Stage(duration_seconds=5 * 60, target=10),
)


@dataclass(frozen=True)
class StagePosition:
    index: int
    stage: Stage
    elapsed_in_stage: float


class Schedule:
    """Answers "how many VUs should be running now" for an ordered stage list."""

    def __init__(self, stages: Sequence[Stage], *, start_vus: int = 0):
        if not stages:
            raise ValueError("schedule needs at least one stage")
        self.stages: tuple[Stage, ...] = tuple(stages)
        self.start_vus = max(0, int(start_vus))

    @property
    def total_duration_seconds(self) -> float:
        return float(sum(s.duration_seconds for s in self.stages))

    @property
    def max_vus(self) -> int:
        return max([self.start_vus] + [s.target for s in self.stages])

    def position(self, elapsed: float) -> Optional[StagePosition]:
        """Return the active stage for `elapsed` seconds, or None when exhausted."""
        if elapsed < 0:
            elapsed = 0.0
        stage_start = 0.0
        for idx, stage in enumerate(self.stages):
            stage_end = stage_start + stage.duration_seconds
            if elapsed < stage_end:
                return StagePosition(
                    index=idx, stage=stage, elapsed_in_stage=elapsed - stage_start
                )
            stage_start = stage_end
        return None

    def target_at(self, elapsed: float) -> Optional[int]:
        pos = self.position(elapsed)
        if pos is None:
            return None
        previous = (
            self.stages[pos.index - 1].target if pos.index > 0 else self.start_vus
        )
        progress = pos.elapsed_in_stage / pos.stage.duration_seconds
        value = previous + (pos.stage.target - previous) * progress
        # Round toward the destination so a ramp starts acting immediately.
        if pos.stage.target >= previous:
            return max(0, int(math.ceil(value)))
        return max(0, int(math.floor(value)))

    def describe(self) -> list[str]:
        return [
            f"{format_duration(s.duration_seconds)} -> {s.target} VUs"
            for s in self.stages
        ]
