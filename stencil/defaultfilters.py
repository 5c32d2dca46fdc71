"""Default variable filters."""
import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.utils import dateformat, numberformat
from django.utils.dateparse import parse_date, parse_datetime
from django.utils.safestring import mark_safe

from .library import Library
from .values import is_number, is_truthy, stringify

register = Library()

DEFAULT_TRUNCATE_LENGTH = 50
TRUNCATION_MARK = '…'

DEFAULT_LOCALE = 'en-US'
# Short-month medium dates, in django.utils.dateformat syntax.
DATE_FORMATS = {
    'en-US': 'M j, Y',
    'en-GB': 'j M Y',
}

CENTS = Decimal('0.01')


###################
# STRINGS         #
###################

@register.filter
def upper(value):
    """Convert a string into all uppercase."""
    return stringify(value).upper()


@register.filter
def lower(value):
    """Convert a string into all lowercase."""
    return stringify(value).lower()


@register.filter
def truncate(value, length=DEFAULT_TRUNCATE_LENGTH):
    """
    Keep the first ``length`` characters and append an ellipsis if the string
    was longer. A length that is not a number, or is zero, means 50.
    """
    if value is None:
        return ''
    text = stringify(value)
    try:
        length = int(length)
    except (TypeError, ValueError, OverflowError):
        length = 0
    if not length:
        length = DEFAULT_TRUNCATE_LENGTH
    if len(text) > length:
        return text[:length] + TRUNCATION_MARK
    return text


@register.filter
def safe(value):
    """Mark the value as a string that should not be auto-escaped."""
    return mark_safe(stringify(value))


###################
# DATES           #
###################

def to_date(value):
    """
    Coerce a date, datetime, ISO-8601 string or epoch milliseconds to a
    date. Return None if that is not possible.
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if is_number(value):
        try:
            return datetime.datetime.fromtimestamp(
                float(value) / 1000, tz=datetime.timezone.utc,
            ).date()
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = parse_datetime(value.strip()) or parse_date(value.strip())
        except ValueError:
            # Well formatted but not a valid date, e.g. 2025-13-45.
            return None
        if isinstance(parsed, datetime.datetime):
            return parsed.date()
        return parsed
    return None


@register.filter(name='formatDate')
def format_date(value, locale=DEFAULT_LOCALE):
    """
    Format a date as a short-month medium date for ``locale``, e.g.
    "Oct 21, 2025" (en-US) or "21 Oct 2025" (en-GB). Values that are not
    dates come back as their string form. Only en-US and en-GB have their
    own patterns; any other locale uses the en-US one.
    """
    if not is_truthy(value):
        return ''
    date = to_date(value)
    if date is None:
        return stringify(value)
    format_string = DATE_FORMATS.get(stringify(locale), DATE_FORMATS[DEFAULT_LOCALE])
    return dateformat.format(date, format_string)


###################
# NUMBERS         #
###################

@register.filter(name='formatUSD')
def format_usd(value):
    """
    Format a number (or numeric string) as US dollars: "$1,234.50".
    Anything else is returned unchanged.
    """
    if not (is_number(value) or isinstance(value, str)):
        return value
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            return value
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Not numeric, or too many digits for the decimal context.
        return value
    formatted = numberformat.format(
        abs(amount), '.', decimal_pos=2, grouping=3, thousand_sep=',',
        force_grouping=True,
    )
    return '%s$%s' % ('-' if amount < 0 else '', formatted)
