import copy
from io import BytesIO
import logging
from typing import Any, Mapping, Optional, Union

import requests
from requests.adapters import BaseAdapter, HTTPAdapter
from requests.structures import CaseInsensitiveDict
from requests.utils import check_header_validity

from .body import MaterializingResponse
from .config import OrchestratorConfig
from .errors import BodyNotAllowed, HeaderAssignmentError, is_body_not_allowed
from .model import (AttemptOutcome, Failure, Provenance, RequestDescriptor, Success, REQUEST_OPTIONS,
                    TRANSPORT_OPTIONS)
from .util import Deadline, error_message, error_properties, header_value


logger = logging.getLogger(__name__)


# Recomputed by `requests` whenever a request is prepared.
FRAMING_HEADERS = {'content-length', 'transfer-encoding'}


def build_request(descriptor: RequestDescriptor, config: OrchestratorConfig) -> requests.PreparedRequest:
    """
    Prepare the request described by `descriptor`.

    Like the fetch `Request` constructor, this refuses to attach a body to a
    method that may not carry one.

    @throws BodyNotAllowed
      If a body was given with one of `config.body_forbidding_methods`.
    @throws TypeError
      If `descriptor` carries options that are neither request nor transport settings.
    """
    unknown = set(descriptor.options) - REQUEST_OPTIONS - TRANSPORT_OPTIONS
    if unknown:
        raise TypeError('Unexpected request option(s): {}'.format(', '.join(sorted(unknown))))

    method = descriptor.method.upper()
    body = descriptor.body
    if body is not None and method in config.body_forbidding_methods:
        raise BodyNotAllowed(method)

    # Start from a `requests.Request` target so its json, files, auth,
    # cookies and hooks are kept.
    if isinstance(descriptor.target, requests.Request):
        request = copy.copy(descriptor.target)
    else:
        request = requests.Request(url=descriptor.url)
    request.method = method
    request.headers = dict(descriptor.headers)
    request.params = descriptor.params or {}
    if 'body' in descriptor.options:
        request.data = body if body is not None else []
        request.json = None
        request.files = []
    return request.prepare()


def stash_header(request: requests.PreparedRequest, name: str, value: Any) -> None:
    """
    Carry `value` in the `name` header of `request`.

    @throws HeaderAssignmentError
      If `value` cannot be represented as a valid header value.
    """
    try:
        value = header_value(value)
        check_header_validity((name, value))
    except (TypeError, ValueError) as e:
        raise HeaderAssignmentError(name, e) from e
    request.headers[name] = value


def synthesize_error_response(error: BaseException,
                              status: int,
                              url: str,
                              request: Optional[requests.PreparedRequest] = None) -> MaterializingResponse:
    """
    Build a response describing `error`, for failures that produced no real response.
    """
    payload = '\n'.join('{}: {}'.format(name, value) for name, value in error_properties(error))

    response = MaterializingResponse()
    response.status_code = status
    response.reason = error_message(error)
    response.headers = CaseInsensitiveDict({'Content-Type': 'text/html'})
    response.raw = BytesIO(payload.encode('utf-8'))
    response.encoding = 'utf-8'
    response.url = request.url if request is not None else url
    response.request = request
    return response


class _Exchange:
    """
    What one call to `RequestOrchestrator.send()` has done so far.
    """

    def __init__(self, target, options: Mapping[str, Any]) -> None:
        self.arguments = (target, dict(options))
        self.descriptor = RequestDescriptor(target, dict(options))
        self.request: Optional[requests.PreparedRequest] = None
        self.outcome: Optional[AttemptOutcome] = None

    def provenance(self) -> Provenance:
        return Provenance(arguments=self.arguments,
                          descriptor=self.descriptor,
                          request=self.request,
                          outcome=self.outcome)


class RequestOrchestrator:
    """
    Sends requests through a transport, repairing the ones a server or the transport refuses.

    A request whose method may not carry a body, but has one, is retried as a
    `POST` with the original method in a header. If that is answered with
    `405 Method Not Allowed`, it is retried once more with its original method
    and its body moved into a header. No request is attempted more than three
    times.

    `send()` never raises. Any failure to build or send a request is turned
    into a response with status `config.error_status` that describes the error.
    """

    def __init__(self, transport: BaseAdapter, config: Optional[OrchestratorConfig] = None) -> None:
        self.transport = transport
        self.config = config or OrchestratorConfig()

    def send(self, target: Union[str, requests.Request],
             options: Optional[Mapping[str, Any]] = None) -> MaterializingResponse:
        exchange = _Exchange(target, options or {})
        try:
            deadline = Deadline(exchange.descriptor.options.get('timeout'), self.config.deadline_policy)
            response = self._send(exchange, deadline)
        except Exception as e:
            logger.warning('Request to {} failed. Responding with a synthesized {}.'.format(
                exchange.descriptor.url, self.config.error_status), exc_info=e)
            exchange.outcome = Failure(e)
            response = synthesize_error_response(e, self.config.error_status, exchange.descriptor.url,
                                                 exchange.request)

        response.attach_provenance(exchange.provenance())
        return response

    def _send(self, exchange: _Exchange, deadline: Deadline) -> MaterializingResponse:
        original = exchange.descriptor
        method = original.method

        try:
            return self._attempt(exchange, original, deadline)
        except Exception as e:
            if not is_body_not_allowed(e):
                raise
            logger.info('{} {} was refused for carrying a body ({}). Retrying as {}.'.format(
                method, original.url, e, self.config.retry_method))

        response = self._attempt(exchange,
                                 original.override(method=self.config.retry_method),
                                 deadline,
                                 {self.config.method_header: method})
        if response.status_code != 405:
            return response

        logger.info('{} {} is not allowed. Retrying as {} without a body.'.format(
            self.config.retry_method, original.url, method))
        response.close()
        # The body as it was sent with `retry_method`, so json and files arrive encoded.
        body = exchange.request.body
        return self._attempt(exchange,
                             original.override(method=method).without_body(),
                             deadline,
                             {self.config.body_header: body} if body else {})

    def _attempt(self, exchange: _Exchange, descriptor: RequestDescriptor, deadline: Deadline,
                 stashed: Optional[Mapping[str, Any]] = None) -> MaterializingResponse:
        exchange.descriptor = descriptor
        exchange.request = None
        timeout = deadline.remaining()

        request = build_request(descriptor, self.config)
        for name, value in (stashed or {}).items():
            try:
                stash_header(request, name, value)
            except HeaderAssignmentError as e:
                logger.warning('{}. Sending the request without it.'.format(e))
        exchange.request = request

        logger.info('Sending {} {}'.format(request.method, request.url))
        transport_options = dict(descriptor.transport_options())
        transport_options['timeout'] = timeout
        response = MaterializingResponse.adopt(self.transport.send(request, stream=True, **transport_options))
        exchange.outcome = Success(response)
        return response

    def close(self) -> None:
        self.transport.close()


class OrchestratingAdapter(BaseAdapter):
    """
    Lets a `requests.Session` send through a `RequestOrchestrator`.

        session.mount('https://', OrchestratingAdapter(create()))
    """

    def __init__(self, orchestrator: RequestOrchestrator) -> None:
        super().__init__()
        self.orchestrator = orchestrator

    def send(self, request: requests.PreparedRequest, stream=False, timeout=None, verify=True, cert=None,
             proxies=None) -> MaterializingResponse:
        headers = {name: value for name, value in request.headers.items() if name.lower() not in FRAMING_HEADERS}
        options = {
            'method': request.method,
            'headers': headers,
            'body': request.body,
            'timeout': timeout,
            'verify': verify,
            'cert': cert,
            'proxies': proxies,
        }
        response = self.orchestrator.send(request.url, options)
        if not stream:
            response.content
        return response

    def close(self) -> None:
        self.orchestrator.close()


def create(transport: Optional[BaseAdapter] = None,
           config: Optional[OrchestratorConfig] = None) -> RequestOrchestrator:
    return RequestOrchestrator(transport if transport is not None else HTTPAdapter(), config)
