"""
ATLAS Tracker - Personal Records
Decides whether a logged set beats every earlier set at the same rep count.
"""

from typing import Iterable, List, Optional, Sequence, Tuple


Sample = Tuple[int, float]


def best_weight(history: Iterable[Sample], reps: int) -> Optional[float]:
    """Heaviest load lifted for exactly ``reps`` repetitions, or None."""
    weights = [weight for r, weight in history if r == reps]
    return max(weights) if weights else None


def is_personal_record(history: Iterable[Sample], reps: int, weight_kg: float) -> bool:
    """
    True when no earlier set at the same rep count is at least as heavy.

    ``history`` must only hold sets from other sessions. Equal load is not a
    new record; the first set ever logged at a rep count always is.
    """
    best = best_weight(history, reps)
    return best is None or weight_kg > best


def mark_personal_records(history: Sequence[Sample], sets: Sequence[Sample]) -> List[bool]:
    """
    PR flags for a batch of sets logged together.

    Every set is compared with the same pre-batch history; sets in the batch
    never compete with each other.
    """
    history = list(history)
    return [is_personal_record(history, reps, weight) for reps, weight in sets]
