from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet


class DeadlinePolicy(Enum):
    PER_ATTEMPT = 'per_attempt'
    """
    Every attempt gets the caller's full `timeout`.
    """

    TOTAL = 'total'
    """
    The caller's `timeout` is one budget shared by all attempts of a request.
    """


@dataclass(frozen=True)
class OrchestratorConfig:
    error_status: int = 569
    """
    Status of responses synthesized from errors. Deliberately not a real HTTP
    status, so it can never be confused with one sent by a server.
    """

    retry_method: str = 'POST'
    """
    Method to retry with when the original method may not carry a body.
    """

    body_forbidding_methods: FrozenSet[str] = field(default_factory=lambda: frozenset({'GET', 'HEAD'}))
    """
    Methods for which building a request with a body fails up front. Leave it
    empty to let the transport decide.
    """

    method_header: str = 'method'
    """
    Header carrying the original method when retrying with `retry_method`.
    """

    body_header: str = 'body'
    """
    Header carrying the original body when retrying without one.
    """

    deadline_policy: DeadlinePolicy = DeadlinePolicy.PER_ATTEMPT
