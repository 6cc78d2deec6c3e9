import time
import traceback
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

import requests

from .config import DeadlinePolicy


Timeout = Union[None, float, Tuple[Optional[float], Optional[float]]]


def clamp(value, min, max):
    return sorted((min, value, max))[1]


def error_message(error: BaseException) -> str:
    """
    The message `error` was raised with. Unlike `str()`, a `KeyError` key is not quoted.
    """
    if len(error.args) == 1 and isinstance(error.args[0], str):
        return error.args[0]
    return str(error)


def error_properties(error: BaseException) -> List[Tuple[str, str]]:
    """
    List everything worth knowing about `error` as `(name, value)` pairs.

    The error's own attributes come after its name, message and args, and the
    formatted traceback comes last.
    """
    properties = [
        ('name', type(error).__name__),
        ('message', error_message(error)),
        ('args', repr(error.args)),
    ]
    for name, value in vars(error).items():
        # Drop the class prefix of name-mangled attributes.
        properties.append((name.rpartition('__')[2].lstrip('_') or name, str(value)))
    stack = ''.join(traceback.format_exception(type(error), error, error.__traceback__)).rstrip()
    properties.append(('stack', stack))
    return properties


def header_value(value: Any) -> Union[str, bytes]:
    """
    Coerce `value` into something `requests` will accept as a header value.
    """
    if isinstance(value, (str, bytes)):
        return value
    if isinstance(value, Mapping):
        return urlencode(list(value.items()), doseq=True)
    if isinstance(value, (list, tuple)):
        return urlencode(list(value), doseq=True)
    return str(value)


class Deadline:
    """
    Hands out the timeout for each attempt of one logical request.
    """

    def __init__(self, timeout: Timeout, policy: DeadlinePolicy,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.__timeout = timeout
        self.__policy = policy
        self.__clock = clock
        self.__started = clock()

    def remaining(self) -> Timeout:
        """
        @return
          The timeout to give the next attempt.
        @throws requests.exceptions.Timeout
          If the whole budget is already spent.
        """
        if self.__policy is DeadlinePolicy.PER_ATTEMPT or self.__timeout is None:
            return self.__timeout

        if isinstance(self.__timeout, tuple):
            parts = [part for part in self.__timeout if part is not None]
            if not parts:
                return self.__timeout
            budget = sum(parts)
        else:
            budget = self.__timeout
        left = budget - (self.__clock() - self.__started)
        if left <= 0:
            raise requests.exceptions.Timeout(
                'Deadline of {}s was spent before the request could be retried'.format(budget))

        if isinstance(self.__timeout, tuple):
            return tuple(None if part is None else clamp(left, 0, part) for part in self.__timeout)
        return left
