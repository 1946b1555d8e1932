from datetime import datetime, timezone
import math

# Admin view highlights trips with ten minutes or less left
ENDING_SOON_SECONDS = 600


def utcnow():
    """Naive UTC wall clock, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def elapsed_seconds(trip, now):
    # A closed trip stops counting at its end timestamp
    reference = now
    if trip.ended_at is not None and trip.ended_at < now:
        reference = trip.ended_at
    return max(0, math.floor((reference - trip.started_at).total_seconds()))


def remaining_seconds(trip, now):
    """Seconds left on ``trip`` at ``now``, never negative.

    Recomputed from the stored start time and granted duration on every call,
    so any number of pollers agree without writing anything back.
    """
    return max(0, trip.duration_seconds - elapsed_seconds(trip, now))


def is_ending_soon(trip, now, threshold=ENDING_SOON_SECONDS):
    return remaining_seconds(trip, now) <= threshold
