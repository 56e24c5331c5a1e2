"""
Supervision Scheduler — Worker.

Wires the backend, notifier, tracker, lifecycle and sweep together and runs
the sweep every SWEEP_INTERVAL_SECONDS until the process is stopped.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field

from src.config import settings
from src.core.completions import CompletionTracker
from src.core.lifecycle import AssignmentLifecycle
from src.core.locks import AssignmentLocks
from src.core.polling import Poller
from src.core.session import SessionContext
from src.core.sweep import OccurrenceSweep, SweepReport
from src.ports.backend_port import BackendPort
from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

SWEEP_JOB_NAME = "occurrence_sweep"


@dataclass
class Worker:
    """Everything the running service holds on to."""

    backend: BackendPort
    session: SessionContext
    tracker: CompletionTracker
    lifecycle: AssignmentLifecycle
    sweep: OccurrenceSweep
    poller: Poller = field(default_factory=Poller)


def build_worker(
    backend: BackendPort | None = None,
    notifier: NotificationPort | None = None,
    session: SessionContext | None = None,
) -> Worker:
    """Build the worker with default adapters where none are given.

    Args:
        backend: Backend port implementation. Defaults to the adapter
                 selected by BACKEND_PROVIDER.
        notifier: Notification port implementation. Defaults to ChatNotifier
                  when NOTIFY_PATIENTS is on and the backend is HTTP.
        session: Shared session context. A fresh one is created if omitted.
    """
    session = session or SessionContext()

    if backend is None:
        from src.adapters.backend_factory import create_backend_adapter
        backend = create_backend_adapter(session=session)

    if notifier is None and settings.NOTIFY_PATIENTS and settings.BACKEND_PROVIDER == "http":
        from src.adapters.chat_notifier import ChatNotifier
        notifier = ChatNotifier(
            settings.BACKEND_URL, session, timeout=settings.BACKEND_TIMEOUT_SECONDS,
        )

    locks = AssignmentLocks()
    tracker = CompletionTracker(backend, locks=locks)
    lifecycle = AssignmentLifecycle(backend)
    sweep = OccurrenceSweep(
        backend, tracker=tracker, lifecycle=lifecycle, notifier=notifier, locks=locks,
    )
    logger.info(
        "Worker built (backend=%s, notifications=%s)",
        type(backend).__name__, "on" if notifier else "off",
    )
    return Worker(
        backend=backend, session=session, tracker=tracker,
        lifecycle=lifecycle, sweep=sweep,
    )


async def ensure_session(worker: Worker) -> None:
    """Start (or restart after a 401) the session for authenticated backends."""
    if worker.session.is_authenticated:
        return
    if settings.BACKEND_TOKEN:
        worker.session.start(settings.BACKEND_TOKEN)
        return
    login = getattr(worker.backend, "login", None)
    if login is not None and settings.BACKEND_EMAIL:
        await login(settings.BACKEND_EMAIL, settings.BACKEND_PASSWORD)


async def sweep_job(worker: Worker) -> SweepReport | None:
    """One scheduled tick: re-authenticate if needed, then sweep."""
    try:
        await ensure_session(worker)
    except Exception as exc:
        logger.error("Authentication failed, skipping sweep: %s", exc)
        return None
    return await worker.sweep.run_once()


async def run(worker: Worker, stop: asyncio.Event | None = None) -> None:
    """Sweep now and then on a fixed interval until stop is set."""
    stop = stop or asyncio.Event()

    async def _tick() -> None:
        await sweep_job(worker)

    subscription = worker.poller.subscribe(
        _tick,
        interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
        name=SWEEP_JOB_NAME,
        run_immediately=True,
    )
    try:
        await stop.wait()
    finally:
        subscription.cancel()
        worker.poller.shutdown()
        logout = getattr(worker.backend, "logout", None)
        if logout is not None and worker.session.is_authenticated and not settings.BACKEND_TOKEN:
            await logout()
        logger.info("Worker stopped")


async def _run_until_signalled() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass
    await run(build_worker(), stop)


def main() -> None:
    """Entry point: build the worker and sweep until interrupted."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting supervision scheduler worker...")
    asyncio.run(_run_until_signalled())


if __name__ == "__main__":
    main()
