"""Worker entrypoint: wires settings, store, clients and processors, then ticks on a schedule."""

import logging
import os
import signal
import threading
from datetime import timedelta
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from groq import Groq

from paysync.agents.payment_agent import PaymentAgent
from paysync.core.db import get_engine, init_db, make_session_factory
from paysync.core.settings import Settings, get_settings
from paysync.core.utils import get_logger, utcnow
from paysync.services.credentials import CredentialResolver
from paysync.services.gmail import GmailMessageSource, GoogleCredentialProvider
from paysync.store.accounts import AccountRepository
from paysync.store.jobs import AccountJobRepository, DiscoveryJobRepository, ExtractionJobRepository
from paysync.store.payments import PaymentRepository
from paysync.workers.account import AccountProcessor
from paysync.workers.discovery import DiscoveryProcessor
from paysync.workers.extraction import ExtractionProcessor
from paysync.workers.watcher import Watcher

logger = get_logger("paysync")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# --- Logging Setup ---
def setup_logging(settings: Settings) -> None:
    """Apply the configured level to every paysync logger and optionally mirror them to a file."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    file_handler = None
    if settings.log_file:
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    names = [name for name in logging.root.manager.loggerDict if name == "paysync" or name.startswith("paysync.")]
    for name in names:
        named = logging.getLogger(name)
        named.setLevel(level)
        if file_handler is not None:
            named.addHandler(file_handler)


def build_agent(settings: Settings) -> PaymentAgent:
    """Create the Groq-backed payment agent."""
    if not settings.groq_api_key:
        logger.warning("GROQ_API_KEY is not set; extraction calls will fail until it is configured")
    client = Groq(api_key=settings.groq_api_key)
    return PaymentAgent(client, settings)


def build_watcher(settings: Settings) -> tuple[Watcher, list[Any]]:
    """Assemble the store, the provider clients and the processors into a Watcher.

    Returns the watcher and the HTTP clients it owns, which the caller closes on shutdown.
    """
    engine = get_engine(settings.database_url)
    init_db(engine)
    session_factory = make_session_factory(engine)

    accounts = AccountRepository(session_factory)
    account_jobs = AccountJobRepository(session_factory)
    discovery_jobs = DiscoveryJobRepository(session_factory)
    extraction_jobs = ExtractionJobRepository(session_factory)
    payments = PaymentRepository(session_factory)

    if not settings.google_client_id or not settings.google_client_secret:
        logger.warning("Google OAuth client credentials are not set; token refresh will fail")
    provider = GoogleCredentialProvider(
        settings.google_client_id,
        settings.google_client_secret,
        refresh_window=timedelta(seconds=settings.token_refresh_window_seconds),
        timeout=settings.http_timeout_seconds,
    )
    source = GmailMessageSource(timeout=settings.http_timeout_seconds)
    resolver = CredentialResolver(accounts, provider)

    watcher = Watcher(
        account_jobs,
        discovery_jobs,
        extraction_jobs,
        AccountProcessor(accounts, discovery_jobs),
        DiscoveryProcessor(
            resolver,
            source,
            discovery_jobs,
            extraction_jobs,
            max_messages_per_account=settings.max_messages_per_account,
            messages_per_page=settings.messages_per_page,
            initial_sync_days=settings.initial_sync_days,
        ),
        ExtractionProcessor(resolver, source, build_agent(settings), extraction_jobs, payments),
        account_batch_size=settings.account_batch_size,
        discovery_batch_size=settings.discovery_batch_size,
        extraction_batch_size=settings.extraction_batch_size,
    )
    return watcher, [provider, source]


def main() -> None:
    """Entry point."""
    settings = get_settings()
    setup_logging(settings)
    watcher, clients = build_watcher(settings)

    logger.info(f"paysync worker starting - polling every {settings.poll_interval_seconds}s")

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        watcher.tick,
        "interval",
        seconds=settings.poll_interval_seconds,
        id="watcher",
        max_instances=1,
        coalesce=True,
        next_run_time=utcnow(),
    )
    scheduler.start()

    # Set up signal handling
    stop_event = threading.Event()

    def handle_signal(signum: int, _frame: Any) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        while not stop_event.is_set():
            stop_event.wait(1)
    finally:
        scheduler.shutdown(wait=False)
        watcher.request_stop()
        idle = watcher.wait_idle(settings.shutdown_timeout_seconds)
        for client in clients:
            client.close()
        if not idle:
            logger.error("Shutdown timeout exceeded, exiting with a tick still in flight")
            # the scheduler pool thread is not a daemon and would hold the exit
            os._exit(1)
        logger.info("paysync worker stopped")


if __name__ == "__main__":
    main()
