"""Workers package: the three stage processors and the watcher that drives them."""

from .account import AccountProcessor  # noqa: F401
from .discovery import DiscoveryProcessor  # noqa: F401
from .extraction import ExtractionProcessor  # noqa: F401
from .watcher import Watcher  # noqa: F401
