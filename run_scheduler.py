#!/usr/bin/env python3
"""
Run the job cache batch scheduler.

Usage:
  python run_scheduler.py              # daily run, hourly health check, weekly cleanup
  python run_scheduler.py --once       # one batch run, then exit
  python run_scheduler.py --health     # print the health report
  python run_scheduler.py --user demo  # print one user's postings
"""
from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from jobfeed import log as logsetup


def _print_user(service, user_id: str) -> None:
    from jobfeed.service import is_new

    now = service.clock()
    postings = service.get_jobs_for_user(user_id)
    print(f"\n{len(postings)} postings for {user_id}\n")
    for p in postings:
        flag = "NEW " if is_new(p, now) else "    "
        salary = f"  {p.salary}" if p.salary else ""
        print(f"  {flag}{p.title} @ {p.company} [{p.location}]{salary}")
        print(f"        {p.url}  ({p.source})")


def main() -> int:
    parser = argparse.ArgumentParser(description="Job cache batch scheduler")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--once", action="store_true", help="run one batch and exit")
    group.add_argument("--health", action="store_true", help="print the system health report")
    group.add_argument("--user", metavar="ID", help="print postings for one user")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING (default: $LOG_LEVEL or INFO)")
    parser.add_argument("--no-log-file", action="store_true", help="log to stdout only")
    args = parser.parse_args()

    logsetup.configure(args.log_level, log_file=False if args.no_log_file else None)
    log = logsetup.get_logger("run_scheduler")

    from jobfeed.runtime import build_service

    service = build_service()

    if args.once:
        record = service.scheduler.run_now("manual")
        if record is None:
            return 1
        log.info("Run %s: %s, %d postings", record.run_id, record.state.value, len(record.postings))
        return 0 if record.succeeded else 1

    if args.health:
        print(json.dumps(service.get_system_health(), indent=2))
        return 0

    if args.user:
        _print_user(service, args.user)
        return 0

    stop = threading.Event()

    def _shutdown(signum, _frame) -> None:
        log.info("Received signal %d — shutting down", signum)
        stop.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    scheduler = service.scheduler
    scheduler.start()
    if service.cache.is_empty():
        log.info("Cache is empty — running an initial batch")
        threading.Thread(target=scheduler.run_now, args=("startup",), daemon=True).start()

    while not stop.wait(1.0):
        pass
    scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
