"""Constrained melodic sequence generation.

:class:`MelodicSequenceGenerator` produces a list of pitches in which every
adjacent pair lies a bounded number of semitones apart. The first pitch is
drawn uniformly from the candidate pool; each later pitch is drawn uniformly
from the pool members whose chromatic distance to the previous pitch falls
inside ``[min_interval, max_interval]``. Distance ignores octave equivalence,
so ``C4`` and ``C5`` are twelve semitones apart rather than zero.

There is no backtracking. When a step has no valid candidate the generator
gives up and returns an empty list because a truncated melody is not a
usable exercise. Recovery (retrying, widening the interval window or
switching pools) is the caller's job; see
:func:`ear_trainer.exercises.build_exercise`.

Example
-------
>>> import random
>>> from ear_trainer.melody_engine import MelodicSequenceGenerator
>>> gen = MelodicSequenceGenerator(random.Random(3))
>>> len(gen.generate(["C4", "D4", "E4"], 4, min_interval=1, max_interval=4))
4
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from . import ALL_NOTES
from .candidate_pool import available_notes
from .note_utils import chromatic_index

__all__ = ["MelodicSequenceGenerator", "generate_note_sequence"]

logger = logging.getLogger(__name__)


class MelodicSequenceGenerator:
    """Draw interval-bounded melodies from a candidate pool."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng if rng is not None else random.Random()

    def generate(
        self,
        candidate_pool: Sequence[str],
        length: int,
        min_interval: Optional[int] = None,
        max_interval: Optional[int] = None,
    ) -> List[str]:
        """Return ``length`` pitches from ``candidate_pool`` or ``[]``.

        Parameters
        ----------
        candidate_pool:
            Ordered pitches to choose from. Duplicates are kept and therefore
            weigh the draw.
        length:
            Number of pitches to produce. Must be at least ``1``.
        min_interval, max_interval:
            Inclusive bounds on the semitone distance between neighbours.
            ``None`` leaves that side unbounded.

        Returns
        -------
        List[str]
            The melody, or an empty list when the pool is empty or some step
            had no candidate satisfying the bounds.

        Raises
        ------
        ValueError
            If ``length`` is below one, a bound is negative, ``min_interval``
            exceeds ``max_interval`` or the pool holds a malformed pitch.
        """

        if length < 1:
            raise ValueError("length must be at least 1")
        if min_interval is not None and min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        if max_interval is not None and max_interval < 0:
            raise ValueError("max_interval must be non-negative")
        if (
            min_interval is not None
            and max_interval is not None
            and min_interval > max_interval
        ):
            raise ValueError("min_interval cannot exceed max_interval")

        pool = list(candidate_pool)
        if not pool:
            return []
        # Resolve every pitch once; this also rejects malformed tokens before
        # any random draw takes place.
        indices = [chromatic_index(pitch) for pitch in pool]

        current = self.rng.randrange(len(pool))
        melody = [pool[current]]
        while len(melody) < length:
            previous = indices[current]
            valid = [
                idx
                for idx, value in enumerate(indices)
                if (min_interval is None or abs(value - previous) >= min_interval)
                and (max_interval is None or abs(value - previous) <= max_interval)
            ]
            if not valid:
                logger.info(
                    "No valid notes meet interval constraints from %s", pool[current]
                )
                return []
            current = self.rng.choice(valid)
            melody.append(pool[current])
        return melody


def generate_note_sequence(
    key: Optional[str],
    notes: Optional[Sequence[str]],
    note_range: Optional[Sequence[str]],
    number_of_notes: int,
    max_interval: Optional[int] = None,
    min_interval: Optional[int] = None,
    *,
    all_notes: Sequence[str] = ALL_NOTES,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """Filter the pitch universe and generate a melody from the result.

    This is the one-call entry point used by the CLI and web interface. The
    pool is built with :func:`available_notes` from ``all_notes``,
    ``note_range``, the ``notes`` selection and ``key``; the melody is then
    produced by :class:`MelodicSequenceGenerator`.

    Returns
    -------
    List[str]
        Generated pitches, or ``[]`` when the pool is empty or the interval
        bounds cannot be satisfied.
    """

    pool = available_notes(all_notes, note_range, notes or [], key)
    if not pool:
        logger.info("No available notes with the current settings")
        return []
    generator = MelodicSequenceGenerator(rng)
    return generator.generate(pool, number_of_notes, min_interval, max_interval)
