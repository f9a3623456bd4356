"""Core package: provides models, database helpers, settings, errors, and shared utilities."""

from .db import get_engine, init_db, make_session_factory  # noqa: F401
from .models import DiscoveryJob, ExtractionJob, Payment  # noqa: F401
from .settings import Settings  # noqa: F401
from .utils import get_logger  # noqa: F401
