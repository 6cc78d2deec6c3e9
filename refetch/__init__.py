from .adapter import OrchestratingAdapter, RequestOrchestrator, create
from .api import fetch, session
from .body import MaterializingResponse
from .config import DeadlinePolicy, OrchestratorConfig
from .errors import BodyNotAllowed, HeaderAssignmentError, is_body_not_allowed
from .model import Blob, FormData, FormEntry, Provenance, RequestDescriptor
