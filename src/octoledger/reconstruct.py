"""Rebuild contiguous interval sequences from cached rows.

Smart meters miss readings, so missing consumption is filled with zero-usage
intervals rather than letting the reporting period shrink. Missing prices
mean the tariff import is broken, so tariff gaps are errors.
"""

import logging
from datetime import timedelta
from typing import Sequence

from .errors import NoDataError, OverlappingIntervalsError, TariffGapError
from .models import ConsumptionInterval, TariffRateInterval

logger = logging.getLogger(__name__)

HALF_HOUR = timedelta(minutes=30)


def reconstruct_consumption(
    rows: Sequence[ConsumptionInterval], width: timedelta = HALF_HOUR
) -> list[ConsumptionInterval]:
    """Join stored rows into a gap-free sequence.

    Gaps are filled with zero-consumption intervals of the given width; the
    last filler of a gap is clipped so it ends exactly where the next row
    starts.
    """
    if not rows:
        raise NoDataError("No consumption data in requested range")
    if width <= timedelta(0):
        raise ValueError(f"Interval width must be positive, got {width}")

    result: list[ConsumptionInterval] = []
    last_end = None

    for row in rows:
        if last_end is not None:
            if row.start < last_end:
                raise OverlappingIntervalsError(
                    f"Consumption interval starting {row.start} overlaps previous interval ending {last_end}"
                )
            if row.start > last_end:
                logger.warning(
                    "Missing data between %s and %s, inserting zero usage intervals", last_end, row.start
                )
                while last_end < row.start:
                    filler_end = min(last_end + width, row.start)
                    result.append(ConsumptionInterval(start=last_end, end=filler_end, consumption=0.0))
                    last_end = filler_end

        result.append(row)
        last_end = row.end

    logger.debug("%d consumption intervals", len(result))
    return result


def reconstruct_tariff(rows: Sequence[TariffRateInterval]) -> list[TariffRateInterval]:
    """Check stored rates join up exactly and return them in order."""
    if not rows:
        raise NoDataError("No tariff rates in requested range")

    last_end = None
    for index, row in enumerate(rows):
        if index > 0:
            if last_end is None:
                raise OverlappingIntervalsError(
                    f"Open-ended rate is followed by a rate starting {row.valid_from}"
                )
            if row.valid_from < last_end:
                raise OverlappingIntervalsError(
                    f"Rate starting {row.valid_from} overlaps previous rate ending {last_end}"
                )
            if row.valid_from > last_end:
                raise TariffGapError(f"Missing tariff data between {last_end} and {row.valid_from}")
        last_end = row.valid_to

    logger.debug("%d tariff rates", len(rows))
    return list(rows)
