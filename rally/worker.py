"""Scheduler worker - runs the scheduling poller on a fixed interval."""

import asyncio
import logging
from datetime import timedelta

import logfire

from rally.config import Settings
from rally.database import AsyncSessionLocal, init_db, close_db
from rally.services.poller import SchedulingPoller
from rally.services.state_machine import WakeUpCallStateMachine
from rally.telephony.twilio_transport import TwilioTransport

settings = Settings()

# Set up logging
logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

# Initialize Logfire for the worker process
if settings.logfire_token:
    logfire.configure(
        token=settings.logfire_token,
        service_name="rally-wakeup-worker",
        environment=settings.app_env,
    )


def build_poller(settings: Settings) -> SchedulingPoller:
    """Wire the poller with the Twilio transport and the shared session factory."""
    machine = WakeUpCallStateMachine(AsyncSessionLocal, TwilioTransport(settings))
    return SchedulingPoller(
        AsyncSessionLocal,
        machine,
        grace_period=timedelta(seconds=settings.missed_call_grace_seconds),
        concurrency=settings.poller_concurrency,
    )


async def poll_forever(poller: SchedulingPoller, interval_seconds: int) -> None:
    """Tick, sleep, repeat. A failing tick is logged and the loop carries on."""
    while True:
        try:
            await poller.tick()
        except Exception as e:
            logger.exception(f"Scheduler tick failed: {e}")
            logfire.error("scheduler_tick_error", error=str(e))
        await asyncio.sleep(interval_seconds)


async def main() -> None:
    await init_db()
    try:
        await poll_forever(build_poller(settings), settings.poll_interval_seconds)
    finally:
        await close_db()


def run_worker():
    """Run the scheduler worker."""
    logger.info("=" * 50)
    logger.info(f"Starting scheduler worker (every {settings.poll_interval_seconds}s)")
    logger.info("=" * 50)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Scheduler worker stopped")


if __name__ == "__main__":
    run_worker()
