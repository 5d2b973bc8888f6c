#!/usr/bin/env python3
"""Terminal job dashboard: status totals, per-type performance and running jobs.

Stats refresh every 30s and the running list every 5s while the dashboard runs.

Usage:
  BACKEND_URL=http://localhost:8080 python scripts/dashboard.py
"""
import asyncio

from jobconsole.gateway import JobGateway
from jobconsole.log import configure_logging
from jobconsole.polling import DashboardView, Poller
from jobconsole.queries import JobQueries
from jobconsole.stats import dashboard_snapshot


def render(snapshot):
    print("\n" + "  ".join(f"{card['title']}: {card['value']}" for card in snapshot["cards"]))
    performance = snapshot["performance"]
    if performance["empty_message"]:
        print(performance["empty_message"])
    for row in performance["rows"]:
        print(f"  {row['display_name']:<24} success {row['success_rate']:>7}  avg {row['avg_duration']:>8}  "
              f"completed {row['completed']}  failed {row['failed']}")
    running = snapshot["running"]
    if running["empty_message"]:
        print(running["empty_message"])
    for item in running["jobs"]:
        progress = item["progress"]
        print(f"  #{item['id']} {item['type']} {progress['percentage']}% {progress['message']}")


async def run_dashboard():
    async with JobGateway() as gateway:
        queries = JobQueries(gateway)
        poller = Poller(queries)
        changed = asyncio.Event()
        queries.cache.add_listener(lambda key: changed.set())
        view = DashboardView(poller)
        await view.mount()
        try:
            while True:
                render(dashboard_snapshot(view.stats(), view.running(), view.types()))
                changed.clear()
                await changed.wait()
        except asyncio.CancelledError:
            pass
        finally:
            view.unmount()
            poller.close()


if __name__ == "__main__":
    configure_logging()
    try:
        asyncio.run(run_dashboard())
    except KeyboardInterrupt:
        print("dashboard: exiting")
