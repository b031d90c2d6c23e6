import math
from numbers import Number

from errors import InvalidArgumentError


def compute_duration_minutes(entry_time, exit_time):
    """
    Whole minutes between entry and exit, rounded down.

    Raises:
        InvalidArgumentError: if exit_time is before entry_time
    """
    if exit_time < entry_time:
        raise InvalidArgumentError('Exit time cannot be before entry time', field='timestamp')
    return int((exit_time - entry_time).total_seconds() // 60)


def compute_charge(duration_minutes, hourly_rate):
    """
    Calculate the parking charge for a stay.

    Every started hour is billed in full: ceil(minutes / 60) * rate.
    A zero-minute stay bills nothing.

    Args:
        duration_minutes: non-negative whole number of minutes
        hourly_rate: non-negative rate per hour

    Returns:
        float amount rounded to 2 decimal places
    """
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise InvalidArgumentError('Duration must be a whole number of minutes', field='duration_minutes')
    if isinstance(hourly_rate, bool) or not isinstance(hourly_rate, Number):
        raise InvalidArgumentError('Hourly rate must be a number', field='hourly_rate')
    if duration_minutes < 0:
        raise InvalidArgumentError('Duration cannot be negative', field='duration_minutes')
    if hourly_rate < 0:
        raise InvalidArgumentError('Hourly rate cannot be negative', field='hourly_rate')

    billable_hours = math.ceil(duration_minutes / 60)
    return round(float(billable_hours * hourly_rate), 2)
