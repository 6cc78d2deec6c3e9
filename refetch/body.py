import json
import logging
import threading
from io import BytesIO
from typing import Any, Callable, Optional

import requests
from requests.models import CONTENT_CHUNK_SIZE

from .forms import extract_form_fields
from .model import Blob, FormData, Provenance


logger = logging.getLogger(__name__)


class BodyCache:
    """
    Holds the payload of one response once it has been read.

    The underlying stream of a response can only be read once. The first caller
    of `materialize()` performs that read; everybody else, including callers
    racing the first one from other threads, waits for and shares its result.
    """

    def __init__(self) -> None:
        self.__lock = threading.Lock()
        self.__buffer: Optional[bytes] = None

    @property
    def materialized(self) -> bool:
        return self.__buffer is not None

    def materialize(self, read: Callable[[], Optional[bytes]]) -> bytes:
        buffer = self.__buffer
        if buffer is None:
            with self.__lock:
                if self.__buffer is None:
                    logger.debug('Reading the response body into the cache.')
                    self.__buffer = bytes(read() or b'')
                buffer = self.__buffer
        return buffer


def decode_text(payload: bytes) -> str:
    try:
        return payload.decode('utf-8')
    except UnicodeDecodeError as e:
        logger.warning('Response body is not valid UTF-8 ({}). Decoding it one byte per character.'.format(e))
        return payload.decode('latin-1')


class MaterializingResponse(requests.Response):
    """
    A `requests.Response` whose body can be read any number of times, in any format.

    Every view (`content`, `text`, `json()`, `bytes()`, `array_buffer()`,
    `blob()`, `form_data()`, `stream()`, `body`, and `iter_content()`) is
    derived from a single cached copy of the payload. The transport stream is
    read the first time any of them is used, and never again.
    """

    def __init__(self) -> None:
        super().__init__()
        self._body_cache = BodyCache()
        self._provenance: Optional[Provenance] = None
        self._source: Optional['MaterializingResponse'] = None

    @classmethod
    def adopt(cls, response: requests.Response) -> 'MaterializingResponse':
        """
        Wrap a response produced by a transport, taking over its unread stream.

        A response that is already materializing (say, from a nested
        orchestrator) keeps its own cache and provenance; the wrapper reads
        its body through it.
        """
        adopted = cls()
        if isinstance(response, MaterializingResponse):
            state = {name: value for name, value in vars(response).items()
                     if name not in ('_body_cache', '_provenance', '_source')}
            adopted.__dict__.update(state)
            adopted._source = response
        else:
            adopted.__dict__.update(response.__dict__)
        return adopted

    def __setstate__(self, state) -> None:
        super().__setstate__(state)
        self._body_cache = BodyCache()
        self._provenance = None
        self._source = None

    # region Provenance

    @property
    def provenance(self) -> Optional[Provenance]:
        return self._provenance

    def attach_provenance(self, provenance: Provenance) -> None:
        if self._provenance is not None:
            raise AttributeError('Provenance has already been attached to this response')
        self._provenance = provenance

    # endregion

    # region Body views

    def _read_stream(self) -> Optional[bytes]:
        # Calls the base implementation directly; our `iter_content()` goes
        # through the cache and would recurse.
        if self._source is not None:
            self._content = self._source.content
        elif self._content is False:
            if self._content_consumed:
                raise RuntimeError('The content for this response was already consumed')
            if self.status_code == 0 or self.raw is None:
                self._content = b''
            else:
                self._content = b''.join(requests.Response.iter_content(self, CONTENT_CHUNK_SIZE)) or b''
        self._content_consumed = True
        return self._content

    @property
    def content(self) -> bytes:
        return self._body_cache.materialize(self._read_stream)

    @property
    def text(self) -> str:
        return decode_text(self.content)

    def json(self, **kwargs) -> Any:
        return json.loads(self.text, **kwargs)

    def iter_content(self, chunk_size=1, decode_unicode=False):
        self.content
        return super().iter_content(chunk_size=chunk_size, decode_unicode=decode_unicode)

    def array_buffer(self) -> memoryview:
        return memoryview(self.content)

    def blob(self) -> Blob:
        return Blob(self.content, self.headers.get('Content-Type', ''))

    def form_data(self) -> FormData:
        return extract_form_fields(self.text)

    def stream(self) -> BytesIO:
        return BytesIO(self.content)

    @property
    def body(self) -> BytesIO:
        return self.stream()

    def bytes(self):
        return self.content

    # endregion
