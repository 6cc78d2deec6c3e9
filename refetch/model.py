"""
Defines the values passed between the orchestrator, the transport and callers.

These types are as simple as possible. Anything the transport already models
(prepared requests, responses) is left to `requests`.
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Iterator, List, Mapping, Optional, Tuple, Union

import requests


REQUEST_OPTIONS = frozenset({'method', 'headers', 'body', 'params'})
TRANSPORT_OPTIONS = frozenset({'timeout', 'verify', 'cert', 'proxies'})


@dataclass(frozen=True)
class RequestDescriptor:
    """
    What the caller asked for: a target and the options to send it with.

    Retries never mutate a descriptor. They derive a new one with `override()`
    or `without_body()`, so the caller's options are left as they were given.
    """

    target: Union[str, requests.Request]
    """
    A URL, or a `requests.Request` whose fields act as defaults for `options`.
    """

    options: Mapping[str, Any] = field(default_factory=dict)
    """
    Request construction settings (method, headers, body, params) and
    transport settings (timeout, verify, cert, proxies).
    """

    @property
    def url(self) -> str:
        if isinstance(self.target, requests.Request):
            return self.target.url
        return str(self.target)

    @property
    def method(self) -> str:
        return (self.options.get('method')
                or getattr(self.target, 'method', None)
                or 'GET')

    @property
    def body(self) -> Any:
        if 'body' in self.options:
            return self.options['body']
        # `requests.Request` defaults its data and files to empty lists.
        data = getattr(self.target, 'data', None)
        if data:
            return data
        json = getattr(self.target, 'json', None)
        if json is not None:
            return json
        return getattr(self.target, 'files', None) or None

    @property
    def headers(self) -> Mapping[str, str]:
        headers = dict(getattr(self.target, 'headers', None) or {})
        headers.update(self.options.get('headers') or {})
        return headers

    @property
    def params(self) -> Any:
        if 'params' in self.options:
            return self.options['params']
        return getattr(self.target, 'params', None) or None

    def transport_options(self) -> Mapping[str, Any]:
        return {key: value for key, value in self.options.items() if key in TRANSPORT_OPTIONS}

    def override(self, **options) -> 'RequestDescriptor':
        merged = dict(self.options)
        merged.update(options)
        return RequestDescriptor(self.target, merged)

    def without_body(self) -> 'RequestDescriptor':
        return self.override(body=None)


@dataclass(frozen=True)
class Success:
    response: requests.Response


@dataclass(frozen=True)
class Failure:
    error: BaseException


AttemptOutcome = Union[Success, Failure]


@dataclass(frozen=True)
class Provenance:
    """
    Diagnostic record of how a response came to be.

    Nothing in this package reads it back. It exists so that a caller looking
    at a surprising response can see which retry produced it.
    """

    arguments: Tuple[Any, Mapping[str, Any]]
    """
    The `(target, options)` pair the caller originally passed.
    """

    descriptor: RequestDescriptor
    """
    The descriptor of the final attempt.
    """

    request: Optional[requests.PreparedRequest]
    """
    The request sent on the final attempt, or `None` if it could not be built.
    """

    outcome: Optional[AttemptOutcome]
    """
    How the final attempt settled.
    """


@dataclass(frozen=True)
class FormEntry:
    name: str
    value: str


class FormData:
    """
    An ordered collection of form fields. Names may repeat.
    """

    def __init__(self, entries=()) -> None:
        self.__entries: List[FormEntry] = [FormEntry(name, value) for name, value in entries]

    def append(self, name: str, value: str) -> None:
        self.__entries.append(FormEntry(name, value))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for entry in self.__entries:
            if entry.name == name:
                return entry.value
        return default

    def getall(self, name: str) -> List[str]:
        return [entry.value for entry in self.__entries if entry.name == name]

    def keys(self) -> List[str]:
        return [entry.name for entry in self.__entries]

    def items(self) -> List[Tuple[str, str]]:
        return [(entry.name, entry.value) for entry in self.__entries]

    def __iter__(self) -> Iterator[FormEntry]:
        return iter(list(self.__entries))

    def __len__(self) -> int:
        return len(self.__entries)

    def __contains__(self, name) -> bool:
        return any(entry.name == name for entry in self.__entries)

    def __eq__(self, other) -> bool:
        if isinstance(other, FormData):
            return self.items() == other.items()
        return NotImplemented

    def __repr__(self) -> str:
        return 'FormData({!r})'.format(self.items())


@dataclass(frozen=True)
class Blob:
    """
    An opaque chunk of binary data, tagged with its media type.
    """

    data: bytes = field(repr=False)
    content_type: str = ''

    @property
    def size(self) -> int:
        return len(self.data)

    def open(self) -> BytesIO:
        return BytesIO(self.data)

    def text(self, encoding: str = 'utf-8') -> str:
        return self.data.decode(encoding, errors='replace')
