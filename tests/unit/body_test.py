from io import BytesIO
import json
import pickle
import threading
import time
from unittest import TestCase

import requests
from requests.structures import CaseInsensitiveDict

from refetch.body import BodyCache, MaterializingResponse, decode_text
from refetch.model import Blob, Provenance, RequestDescriptor


class CountingReader(BytesIO):
    """
    A raw stream that remembers how often it was read from.
    """

    def __init__(self, payload: bytes, delay: float = 0.0) -> None:
        super().__init__(payload)
        self.reads = 0
        self.delay = delay

    def read(self, size=-1):
        self.reads += 1
        if self.delay:
            time.sleep(self.delay)
        return super().read(size)


def make_response(payload: bytes, headers=None, delay: float = 0.0) -> MaterializingResponse:
    response = requests.Response()
    response.status_code = 200
    response.reason = 'OK'
    response.headers = CaseInsensitiveDict(headers or {})
    response.raw = CountingReader(payload, delay)
    response.url = 'http://example.com/'
    return MaterializingResponse.adopt(response)


class TestBodyCache(TestCase):
    def test_reads_once(self):
        cache = BodyCache()
        calls = []

        def read():
            calls.append(1)
            return b'payload'

        self.assertFalse(cache.materialized)
        self.assertEqual(b'payload', cache.materialize(read))
        self.assertEqual(b'payload', cache.materialize(read))
        self.assertTrue(cache.materialized)
        self.assertEqual(1, len(calls))

    def test_nothing_read_is_an_empty_payload(self):
        cache = BodyCache()

        self.assertEqual(b'', cache.materialize(lambda: None))

    def test_a_failed_read_is_not_cached(self):
        cache = BodyCache()

        def fail():
            raise requests.exceptions.ChunkedEncodingError('connection dropped')

        with self.assertRaises(requests.exceptions.ChunkedEncodingError):
            cache.materialize(fail)
        self.assertFalse(cache.materialized)


class TestDecodeText(TestCase):
    def test_utf8(self):
        self.assertEqual('café', decode_text('café'.encode('utf-8')))

    def test_invalid_utf8_falls_back_to_one_character_per_byte(self):
        with self.assertLogs('refetch.body', level='WARNING'):
            text = decode_text(b'\xff\xfeok')

        self.assertEqual('ÿþok', text)


class TestMaterializingResponse(TestCase):
    def test_text_is_idempotent(self):
        response = make_response('héllo'.encode('utf-8'))

        first = response.text
        second = response.text

        self.assertEqual('héllo', first)
        self.assertEqual(first, second)
        self.assertEqual(first, response.bytes().decode('utf-8'))

    def test_stream_is_read_only_once_across_views(self):
        payload = json.dumps({'a': [1, 2, 3]}).encode('utf-8')
        response = make_response(payload, {'Content-Type': 'application/json'})

        response.text
        reads = response.raw.reads
        response.json()
        response.bytes()
        response.array_buffer()
        response.blob()
        response.form_data()
        response.stream().read()
        response.body.read()
        response.content
        b''.join(response.iter_content(4))

        self.assertEqual(reads, response.raw.reads)

    def test_json_matches_text(self):
        response = make_response(b'{"name": "x", "values": [1, 2.5, null]}')

        self.assertEqual(json.loads(response.text), response.json())
        self.assertEqual(response.json(), response.json())

    def test_malformed_json_raises(self):
        response = make_response(b'<html>not json</html>')

        with self.assertRaises(json.JSONDecodeError):
            response.json()
        # The body is still there for other views.
        self.assertEqual('<html>not json</html>', response.text)

    def test_invalid_utf8_text_does_not_raise(self):
        response = make_response(b'\x80abc')

        with self.assertLogs('refetch.body', level='WARNING'):
            self.assertEqual('\u0080abc', response.text)

    def test_binary_views(self):
        payload = bytes(range(256))
        response = make_response(payload, {'Content-Type': 'application/octet-stream'})

        view = response.array_buffer()
        self.assertIsInstance(view, memoryview)
        self.assertTrue(view.readonly)
        self.assertEqual(payload, view.tobytes())
        self.assertEqual(payload, response.bytes())

        blob = response.blob()
        self.assertIsInstance(blob, Blob)
        self.assertEqual(256, blob.size)
        self.assertEqual('application/octet-stream', blob.content_type)
        self.assertEqual(payload, blob.open().read())

    def test_streams_are_fresh_every_time(self):
        response = make_response(b'abcdef')

        first = response.stream()
        self.assertEqual(b'abc', first.read(3))
        second = response.stream()

        self.assertIsNot(first, second)
        self.assertEqual(b'abcdef', second.read())
        self.assertEqual(b'def', first.read())
        self.assertEqual(b'abcdef', response.body.read())
        self.assertEqual(b'abcdef', response.body.read())

    def test_form_data(self):
        response = make_response(b'--B\r\nname="a"\r\n\r\n1\r\n--B\r\nname="b"\r\n\r\n2\r\n--B')

        self.assertEqual([('a', '1'), ('b', '2')], response.form_data().items())
        self.assertEqual(response.form_data(), response.form_data())

    def test_form_data_without_boundary_is_empty(self):
        response = make_response(b'plain text')

        self.assertEqual(0, len(response.form_data()))

    def test_iter_content_before_any_other_view(self):
        response = make_response(b'line one\nline two')

        chunks = list(response.iter_content(4))

        self.assertEqual(b'line one\nline two', b''.join(chunks))
        self.assertEqual('line one\nline two', response.text)
        self.assertEqual([b'line one', b'line two'], list(response.iter_lines()))

    def test_concurrent_first_reads_share_one_read(self):
        payload = b'x' * 50000
        response = make_response(payload, delay=0.01)
        results = []

        def read():
            results.append(response.content)

        threads = [threading.Thread(target=read) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual([payload] * 8, results)

    def test_adopt_keeps_the_response_fields(self):
        response = make_response(b'')

        self.assertEqual(200, response.status_code)
        self.assertEqual('OK', response.reason)
        self.assertEqual('http://example.com/', response.url)

    def test_adopting_a_materializing_response_wraps_it(self):
        inner = make_response(b'shared')
        inner.attach_provenance(Provenance(arguments=('http://example.com/', {}),
                                           descriptor=RequestDescriptor('http://example.com/'),
                                           request=None,
                                           outcome=None))

        outer = MaterializingResponse.adopt(inner)

        self.assertIsNot(inner, outer)
        self.assertIsNone(outer.provenance)
        self.assertIsNotNone(inner.provenance)
        self.assertEqual(200, outer.status_code)
        self.assertEqual('shared', outer.text)
        reads = inner.raw.reads
        self.assertEqual(b'shared', inner.content)
        self.assertEqual([b'sha', b'red'], list(outer.iter_content(3)))
        self.assertEqual(reads, inner.raw.reads)

    def test_adopting_does_not_change_plain_responses(self):
        plain = requests.Response()

        MaterializingResponse.adopt(plain)

        self.assertNotIsInstance(plain, MaterializingResponse)
        self.assertFalse(hasattr(plain, 'form_data'))

    def test_provenance_is_write_once(self):
        response = make_response(b'')
        provenance = Provenance(arguments=('http://example.com/', {}),
                                descriptor=RequestDescriptor('http://example.com/'),
                                request=None,
                                outcome=None)

        self.assertIsNone(response.provenance)
        response.attach_provenance(provenance)
        self.assertIs(provenance, response.provenance)
        with self.assertRaises(AttributeError):
            response.attach_provenance(provenance)

    def test_survives_pickling(self):
        response = make_response(b'{"a": 1}')

        restored = pickle.loads(pickle.dumps(response))

        self.assertEqual({'a': 1}, restored.json())
        self.assertEqual(b'{"a": 1}', restored.bytes())
