"""
Ready-made entry points for callers that do not wire up their own orchestrator.
"""

import threading
from typing import Any, Mapping, Optional

import requests

from .adapter import OrchestratingAdapter, RequestOrchestrator, create
from .body import MaterializingResponse


_default: Optional[RequestOrchestrator] = None
_default_lock = threading.Lock()


def default_orchestrator() -> RequestOrchestrator:
    global _default
    with _default_lock:
        if _default is None:
            _default = create()
        return _default


def fetch(target, options: Optional[Mapping[str, Any]] = None, **kw) -> MaterializingResponse:
    """
    Send a request through the default orchestrator.

    Options can be passed as a mapping, as keywords, or both; keywords win.

        response = fetch('https://example.com/search', method='GET', body='q=1')
    """
    merged = dict(options or {})
    merged.update(kw)
    return default_orchestrator().send(target, merged)


def session(orchestrator: Optional[RequestOrchestrator] = None) -> requests.Session:
    """
    Create a `requests.Session` that sends every HTTP(S) request through `orchestrator`.
    """
    result = requests.Session()
    adapter = OrchestratingAdapter(orchestrator if orchestrator is not None else create())
    result.mount('http://', adapter)
    result.mount('https://', adapter)
    return result
