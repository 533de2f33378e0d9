"""Splitting a master question list into bounded, shuffled batches."""
import random
from typing import Iterator, Sequence

from quiz_master.config import BATCH_SIZE
from quiz_master.errors import PreconditionError


def shuffle(questions: Sequence, rng: random.Random | None = None) -> list:
    """Return a shuffled copy of ``questions``; the input is left untouched."""
    shuffled = list(questions)
    (rng or random).shuffle(shuffled)
    return shuffled


def next_batch(pool: Sequence, batch_size: int = BATCH_SIZE) -> tuple[list, list]:
    """Split ``pool`` into the next batch and the remainder, left to right."""
    if batch_size < 1:
        raise PreconditionError(f"Batch size must be at least 1, got {batch_size}")
    pool = list(pool)
    return pool[:batch_size], pool[batch_size:]


def iter_batches(pool: Sequence, batch_size: int = BATCH_SIZE) -> Iterator[list]:
    """Yield successive batches until ``pool`` is exhausted."""
    remainder = list(pool)
    while remainder:
        batch, remainder = next_batch(remainder, batch_size)
        yield batch
