"""Background worker loop.

Polls open checkout sessions against the checkout provider and periodically
deactivates expired login sessions. The same loop runs either inside the API
process (started from the app lifespan) or standalone via
`python -m recipe_billing.worker`.
"""

import logging
import threading
import time
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from recipe_billing.core.config import Settings, settings as default_settings
from recipe_billing.core.errors import BillingNotConfiguredError
from recipe_billing.core.log_config import configure_logging
from recipe_billing.db import SessionLocal, session_scope
from recipe_billing.services.checkout import ReconcileSummary, reconcile_open_sessions
from recipe_billing.services.checkout_client import CheckoutClient
from recipe_billing.services.sessions import cleanup_expired_sessions


logger = logging.getLogger(__name__)


def process_checkouts_once(
    factory: sessionmaker = SessionLocal,
    client: Optional[CheckoutClient] = None,
    cfg: Optional[Settings] = None,
) -> Optional[ReconcileSummary]:
    """One reconciliation pass; None when billing is not configured."""
    if client is None:
        try:
            client = CheckoutClient.from_settings(cfg or default_settings)
        except BillingNotConfiguredError:
            return None
    with session_scope(factory) as db:
        return reconcile_open_sessions(db, client)


def cleanup_sessions_once(factory: sessionmaker = SessionLocal) -> int:
    with session_scope(factory) as db:
        return cleanup_expired_sessions(db)


class PollingWorker(threading.Thread):
    def __init__(
        self,
        factory: sessionmaker = SessionLocal,
        cfg: Optional[Settings] = None,
        client: Optional[CheckoutClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(name='checkout-poller', daemon=True)
        self.factory = factory
        self.cfg = cfg or default_settings
        self.client = client
        self.clock = clock
        self._stop_event = threading.Event()
        self._billing_warned = False
        self._last_cleanup: Optional[float] = None

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def tick(self) -> None:
        summary = process_checkouts_once(self.factory, self.client, self.cfg)
        if summary is None and not self._billing_warned:
            logger.warning('Billing not configured; checkout monitoring idle')
            self._billing_warned = True

        now = self.clock()
        if self._last_cleanup is None or now - self._last_cleanup >= self.cfg.session_cleanup_seconds:
            cleanup_sessions_once(self.factory)
            self._last_cleanup = now

    def run(self) -> None:
        logger.info(
            'Worker started. checkout_poll_seconds=%s session_cleanup_seconds=%s',
            self.cfg.checkout_poll_seconds, self.cfg.session_cleanup_seconds,
        )
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as exc:
                logger.exception('Worker loop error: %s', exc)
            self._stop_event.wait(self.cfg.checkout_poll_seconds)
        logger.info('Worker stopped')


def main():
    configure_logging()
    worker = PollingWorker()
    try:
        worker.run()
    except KeyboardInterrupt:
        worker.stop(timeout=None)


if __name__ == '__main__':
    main()
