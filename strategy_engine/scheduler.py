from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

logger = logging.getLogger("strategy_engine.scheduler")


def next_run_at(now: datetime, interval_minutes: int) -> datetime:
    """First slot strictly after ``now`` on the UTC grid of ``interval_minutes``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    step = max(1, interval_minutes) * 60
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = (now - midnight).total_seconds()
    slots = int(elapsed // step) + 1
    return midnight + timedelta(seconds=slots * step)


def sleep_until(target: datetime, sleep: Callable[[float], None] = time.sleep) -> None:
    now = datetime.now(timezone.utc)
    delay = max(0.0, (target - now).total_seconds())
    if delay:
        logger.info(
            "scheduler_waiting next_run_utc=%s wait_seconds=%d",
            target.strftime("%Y-%m-%d %H:%M:%S"),
            int(delay),
        )
        sleep(delay)


def run_every(
    interval_minutes: int,
    task: Callable[[], None],
    max_runs: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Trigger ``task`` on every interval slot; a failing run never stops the loop."""
    logger.info("scheduler_started cadence=%dm timezone=UTC", interval_minutes)
    runs = 0
    while max_runs is None or runs < max_runs:
        run_at = next_run_at(datetime.now(timezone.utc), interval_minutes)
        sleep_until(run_at, sleep)
        logger.info("scheduler_trigger run_at_utc=%s", run_at.strftime("%Y-%m-%d %H:%M:%S"))
        try:
            task()
        except Exception:
            logger.exception("scheduler_task_failed")
        runs += 1
