#!/usr/bin/env python3
"""Follow one job in the terminal: status, progress and new log lines.

The detail and log queries poll only while the job is running; the watcher
exits once the job reaches a terminal status.

Usage:
  BACKEND_URL=http://localhost:8080 BACKEND_TOKEN=... python scripts/watch_job.py 42
"""
import asyncio
import sys

import structlog

from jobconsole.gateway import JobGateway
from jobconsole.lifecycle import available_actions, is_terminal, progress_info
from jobconsole.log import configure_logging
from jobconsole.polling import JobDetailView, Poller
from jobconsole.queries import JobQueries

logger = structlog.get_logger("watch_job")


def render(job, logs, seen_logs: int) -> int:
    info = progress_info(job)
    counters = f" ({info['processed_items']}/{info['total_items']} items)" if info["total_items"] > 0 else ""
    print(f"job #{job.id} [{job.type}] {job.status} {info['percentage']}%{counters} {info['message']}")
    for log in logs[seen_logs:]:
        print(f"  {log.created_at.isoformat()} {log.level.upper():7} {log.message}")
    return len(logs)


async def watch(job_id: int):
    async with JobGateway() as gateway:
        queries = JobQueries(gateway)
        poller = Poller(queries)
        changed = asyncio.Event()
        queries.cache.add_listener(lambda key: changed.set())
        view = JobDetailView(poller, job_id)
        await view.mount()
        seen_logs = 0
        try:
            while True:
                job = view.job()
                if job is None:
                    logger.error("job_not_found", job_id=job_id)
                    return 1
                seen_logs = render(job, view.logs(), seen_logs)
                if is_terminal(job.status):
                    # pick up the final log lines written on completion
                    await queries.get_logs(job_id, view.log_limit, force=True)
                    render(job, view.logs(), seen_logs)
                    print(f"finished: {job.status}; actions: {', '.join(available_actions(job)) or 'none'}")
                    return 0
                if job.status == "pending":
                    print("waiting for the job to start (pending jobs are not polled)")
                changed.clear()
                await changed.wait()
        except asyncio.CancelledError:
            return 130
        finally:
            view.unmount()
            poller.close()


if __name__ == "__main__":
    if len(sys.argv) != 2 or not sys.argv[1].isdigit():
        print("usage: watch_job.py JOB_ID")
        sys.exit(2)
    configure_logging()
    try:
        sys.exit(asyncio.run(watch(int(sys.argv[1]))))
    except KeyboardInterrupt:
        print("watch_job: exiting")
