"""Progress series, results feedback and subject statistics."""
from dataclasses import dataclass, field
from typing import Sequence

from quiz_master.models import QuizAttempt, Subject

NO_HISTORY = "no_history"
INSUFFICIENT_HISTORY = "insufficient_history"
OK = "ok"


@dataclass(frozen=True)
class ProgressPoint:
    x: float  # 0.0 = earliest attempt, 1.0 = latest
    y: float  # percentage correct, 0-100
    attempt: QuizAttempt


@dataclass(frozen=True)
class ProgressSeries:
    status: str
    points: list = field(default_factory=list)

    @property
    def renderable(self) -> bool:
        """Whether a trend line should be drawn."""
        return self.status == OK


def _percentage(attempt: QuizAttempt) -> float:
    return attempt.score / attempt.total_questions * 100 if attempt.total_questions > 0 else 0.0


def aggregate_progress(history: Sequence[QuizAttempt]) -> ProgressSeries:
    """Project an attempt history onto plottable (time, percentage) points.

    Fewer than two attempts cannot show a trend; the single point is still
    computed but the series is flagged as not renderable.
    """
    if not history:
        return ProgressSeries(NO_HISTORY)
    ordered = sorted(history, key=lambda a: a.date)
    earliest, latest = ordered[0].date, ordered[-1].date
    span = (latest - earliest).total_seconds()
    points = [
        ProgressPoint(
            x=(a.date - earliest).total_seconds() / span if span else 0.0,
            y=_percentage(a),
            attempt=a,
        )
        for a in ordered
    ]
    status = OK if len(points) >= 2 else INSUFFICIENT_HISTORY
    return ProgressSeries(status, points)


def get_feedback_label(percentage: float) -> str:
    if percentage >= 100:
        return "Perfect Score!"
    elif percentage >= 80:
        return "Excellent Work!"
    elif percentage >= 50:
        return "Good Effort!"
    return "Keep Practicing!"


def get_feedback_color(percentage: float) -> str:
    if percentage >= 100:
        return "yellow"
    elif percentage >= 80:
        return "green"
    elif percentage >= 50:
        return "cyan"
    return "grey62"


def get_subject_stats(subject: Subject) -> dict:
    ordered = sorted(subject.history, key=lambda a: a.date)
    percentages = [_percentage(a) for a in ordered]
    return {
        "attempts": len(ordered),
        "best": round(max(percentages), 1) if percentages else 0.0,
        "latest": round(percentages[-1], 1) if percentages else 0.0,
        "average": round(sum(percentages) / len(percentages), 1) if percentages else 0.0,
        "cached_questions": len(subject.cached_questions or []),
    }
