"""Store package: the job store, accounts and payments, backed by SQLAlchemy."""

from .accounts import AccountRepository  # noqa: F401
from .jobs import AccountJobRepository, DiscoveryJobRepository, ExtractionJobRepository  # noqa: F401
from .payments import PaymentRepository  # noqa: F401
