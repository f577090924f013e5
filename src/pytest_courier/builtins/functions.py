"""Built-in expression functions of the `courier` namespace.

Functions receive rendered string arguments, so numeric arguments are
converted here. For example `courier:randomNumber(6)` yields a six digit
number and `courier:substring('${id}', 0, 8)` the first eight characters
of a variable.
"""

from datetime import UTC, datetime
from secrets import choice, randbelow
from string import ascii_letters, ascii_lowercase, ascii_uppercase, digits
from uuid import uuid4

from pytest_courier.extensions import Function

#: Alphabets of `randomString` by mode name.
_ALPHABETS = {
    'mixed': ascii_letters,
    'upper': ascii_uppercase,
    'lower': ascii_lowercase,
    'alphanumeric': ascii_letters + digits,
}


def _random_number(length: str = '8', padding: str = 'false') -> str:
    """Random number with a fixed count of digits.

    Without padding, the first digit is never zero.
    """
    size = int(length)
    if size < 1:
        raise ValueError('length must be positive')

    first = str(randbelow(10) if padding.lower() == 'true' else randbelow(9) + 1)

    return first + ''.join(str(randbelow(10)) for _ in range(size - 1))


def _random_string(length: str = '10', mode: str = 'mixed', with_digits: str = 'false') -> str:
    alphabet = _ALPHABETS.get(mode.lower())
    if alphabet is None:
        raise ValueError(f'unknown mode {mode!r}')
    if with_digits.lower() == 'true':
        alphabet += digits

    return ''.join(choice(alphabet) for _ in range(int(length)))


def _random_uuid() -> str:
    return str(uuid4())


def _current_date(date_format: str = '%Y-%m-%d') -> str:
    """Current UTC date formatted with `strftime` directives."""
    return datetime.now(UTC).strftime(date_format)


def _concat(*values: str) -> str:
    return ''.join(values)


def _substring(value: str, start: str, end: str | None = None) -> str:
    if end is None:
        return value[int(start):]

    return value[int(start):int(end)]


random_number = Function(name='randomNumber', function=_random_number)
random_string = Function(name='randomString', function=_random_string)
random_uuid = Function(name='randomUUID', function=_random_uuid)
current_date = Function(name='currentDate', function=_current_date)
concat = Function(name='concat', function=_concat)
upper_case = Function(name='upperCase', function=str.upper)
lower_case = Function(name='lowerCase', function=str.lower)
substring = Function(name='substring', function=_substring)
