"""
Runtime value semantics.

Everything that flows through a template is plain Python data: ``None``,
``bool``, numbers (``int``, ``float`` and ``Decimal``, never ``bool``),
``str``, lists (``list`` or ``tuple``) and mappings. This module decides how
those values are looked up, compared, combined, tested for truth and turned
into text. None of these functions raise for mismatched data: an operation
that makes no sense for its operands yields ``None``.
"""
import math
import operator
from collections.abc import Mapping
from decimal import Decimal

NUMBER_TYPES = (int, float, Decimal)


class _Missing:
    """
    Marker for a path that did not resolve. It is falsy and distinct from
    ``None`` so callers can tell "absent" from "present but null".
    """
    def __repr__(self):
        return '<MISSING>'

    def __bool__(self):
        return False


MISSING = _Missing()


def is_number(value):
    return isinstance(value, NUMBER_TYPES) and not isinstance(value, bool)


def is_list(value):
    return isinstance(value, (list, tuple))


def is_map(value):
    return isinstance(value, Mapping)


def is_nan(value):
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, Decimal):
        return value.is_nan()
    return False


def kind(value):
    """Return the runtime kind of a value: null, bool, number, string, list, map or object."""
    if value is None or value is MISSING:
        return 'null'
    if isinstance(value, bool):
        return 'bool'
    if is_number(value):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if is_list(value):
        return 'list'
    if is_map(value):
        return 'map'
    return 'object'


def is_truthy(value):
    """
    None, False, zero, NaN and the empty string are falsy. Everything else,
    empty lists and mappings included, is truthy.
    """
    if value is None or value is MISSING or value is False:
        return False
    if is_number(value):
        return value != 0 and not is_nan(value)
    if isinstance(value, str):
        return value != ''
    return True


def values_equal(left, right):
    """
    Structural equality by kind and value. A number never equals a string and
    a bool never equals a number.
    """
    left_kind = kind(left)
    if left_kind != kind(right):
        return False
    if left_kind == 'null':
        return True
    if left_kind == 'list':
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    if left_kind == 'map':
        return left.keys() == right.keys() and all(
            values_equal(left[key], right[key]) for key in left
        )
    try:
        return left == right
    except ArithmeticError:
        return False


def stringify(value):
    """
    Canonical string form of a value as it appears in rendered output.
    """
    if value is None or value is MISSING:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if is_list(value):
        return ','.join(stringify(item) for item in value)
    return str(value)


def resolve_path(context, segments):
    """
    Walk ``segments`` (field names and integer indexes) starting from a name
    in ``context``. Return MISSING as soon as a step cannot be taken.
    """
    name, *rest = segments
    current = context.get(name, MISSING)
    for segment in rest:
        if isinstance(segment, int):
            if is_list(current) and 0 <= segment < len(current):
                current = current[segment]
            else:
                return MISSING
        elif is_map(current) and segment in current:
            current = current[segment]
        else:
            return MISSING
    return current


def _numeric(func):
    def wrapper(left, right):
        if not (is_number(left) and is_number(right)):
            return None
        try:
            return func(left, right)
        except (TypeError, ArithmeticError):
            # Mixed float/Decimal operands, division by zero.
            return None
    return wrapper


def _ordering(func):
    def wrapper(left, right):
        comparable = (
            (is_number(left) and is_number(right)) or
            (isinstance(left, str) and isinstance(right, str))
        )
        if not comparable:
            return None
        try:
            return func(left, right)
        except (TypeError, ArithmeticError):
            return None
    return wrapper


def add(left, right):
    if isinstance(left, str) or isinstance(right, str):
        return stringify(left) + stringify(right)
    return _numeric(operator.add)(left, right)


def not_equal(left, right):
    return not values_equal(left, right)


def logical_not(value):
    return not is_truthy(value)


BINARY_OPERATORS = {
    '+': add,
    '-': _numeric(operator.sub),
    '*': _numeric(operator.mul),
    '/': _numeric(operator.truediv),
    '%': _numeric(operator.mod),
    '<': _ordering(operator.lt),
    '<=': _ordering(operator.le),
    '>': _ordering(operator.gt),
    '>=': _ordering(operator.ge),
    '==': values_equal,
    '!=': not_equal,
}

UNARY_OPERATORS = {
    '!': logical_not,
}
