"""
Timing and fallback scoring policies for an interview session.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from models.schemas import Answer, Difficulty, SubmissionKind
from utils.config import config


RESUME_FRESH = "fresh"
RESUME_PRESERVE = "preserve"


@dataclass
class TimingPolicy:
    """
    Maps question difficulty to a time limit and clamps measured times.
    """
    time_limits: Dict[str, int] = field(default_factory=lambda: dict(config.interview.time_limits))
    default_time_limit: int = field(default_factory=lambda: config.interview.default_time_limit)
    timeout_sentinel: str = field(default_factory=lambda: config.interview.timeout_sentinel)
    resume_policy: str = field(default_factory=lambda: config.interview.resume_policy)

    def __post_init__(self):
        if self.resume_policy not in (RESUME_FRESH, RESUME_PRESERVE):
            raise ValueError(f"Unknown resume policy: {self.resume_policy}")

    def time_limit_for(self, difficulty: Union[Difficulty, str]) -> int:
        """
        Get the countdown length for a difficulty.

        Args:
            difficulty: Difficulty enum or raw string

        Returns:
            Time limit in seconds
        """
        key = difficulty.value if isinstance(difficulty, Difficulty) else str(difficulty).lower()
        return self.time_limits.get(key, self.default_time_limit)

    @staticmethod
    def clamp_time_taken(elapsed_seconds: float, limit_seconds: int) -> int:
        """Clamp elapsed time to [0, limit], in whole seconds."""
        if elapsed_seconds != elapsed_seconds:  # NaN
            return 0
        return int(max(0, min(limit_seconds, math.floor(elapsed_seconds))))


@dataclass
class FallbackScoringPolicy:
    """
    Local score used when the scoring service is unavailable.

    The score is a linear function of the average answer length,
    clamped to 0-100. Timed-out answers count as empty.
    """
    chars_per_unit: float = field(default_factory=lambda: config.interview.fallback_chars_per_unit)
    slope: float = field(default_factory=lambda: config.interview.fallback_slope)
    base: float = field(default_factory=lambda: config.interview.fallback_base)
    timeout_sentinel: str = field(default_factory=lambda: config.interview.timeout_sentinel)

    def average_length(self, answers: Iterable[Answer]) -> float:
        lengths: List[int] = []
        for answer in answers:
            if answer.kind == SubmissionKind.TIMEOUT and answer.answer_text == self.timeout_sentinel:
                lengths.append(0)
            else:
                lengths.append(len(answer.answer_text.strip()))
        return sum(lengths) / len(lengths) if lengths else 0.0

    def score(self, answers: Iterable[Answer]) -> int:
        """
        Compute the fallback score.

        Args:
            answers: Recorded answers in question order

        Returns:
            Integer score from 0-100
        """
        avg = self.average_length(answers)
        raw = (avg / self.chars_per_unit) * self.slope + self.base
        return int(round(max(0.0, min(100.0, raw))))

    @staticmethod
    def summary(total_questions: int) -> str:
        return (
            f"Interview completed with {total_questions} questions answered. "
            "Scoring service temporarily unavailable."
        )


# Score interpretation thresholds on the 0-100 scale
INTERPRETATIONS = {
    (0, 30): "Poor - Significant improvement needed",
    (30, 50): "Below Average - Some gaps identified",
    (50, 65): "Average - Meets basic expectations",
    (65, 80): "Good - Above average performance",
    (80, 90): "Very Good - Strong candidate",
    (90, 101): "Excellent - Outstanding performance",
}


def get_score_interpretation(score: Optional[float]) -> Optional[str]:
    """Get human-readable interpretation of a 0-100 score."""
    if score is None:
        return None
    for (low, high), interpretation in INTERPRETATIONS.items():
        if low <= score < high:
            return interpretation
    return "Score out of range"


def format_clock(seconds: int) -> str:
    """Format seconds as MM:SS."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
