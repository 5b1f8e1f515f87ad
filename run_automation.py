"""
Automation Runner - One Dispatch Cycle
======================================

Sends every due automation job once. Meant to be run from cron:

    */5 * * * * cd /srv/loopreview && python run_automation.py

Options:
    --test    Render everything but skip the actual send (jobs are still
              marked completed).

Exits with status 1 on an unexpected error so cron monitoring notices.
"""

import argparse
import logging
import sys

from loopreview.application import build_automation_service
from loopreview.infrastructure.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

PREVIEW_COUNT = 5


def run_automation(test_mode: bool = False) -> int:
    """Process pending automations. Returns the process exit code."""

    print("\n" + "=" * 60)
    print(f"   Loop Review - Automation Runner{' (TEST MODE)' if test_mode else ''}")
    print("=" * 60 + "\n")

    settings = get_settings()
    for issue in settings.validate():
        print(f"   {issue}")

    service = build_automation_service(settings)

    try:
        pending = service.list_pending()
        print(f"Found {len(pending)} pending job(s)")
        for job in pending[:PREVIEW_COUNT]:
            print(
                f"   #{job.id} {job.channel.value:<5} -> {job.recipient} "
                f"at {job.scheduled_for.isoformat()} ({job.business_name or 'unknown business'})"
            )
        if len(pending) > PREVIEW_COUNT:
            print(f"   ... and {len(pending) - PREVIEW_COUNT} more")

        print("\nProcessing due jobs...\n")
        summary = service.process_pending(test_mode=test_mode)

        for result in summary.results:
            status = "OK  " if result.success else "FAIL"
            detail = result.error or result.subject or result.message[:60]
            print(f"   [{status}] #{result.job_id} {result.channel.value} -> {result.recipient}: {detail}")

        print("\n" + "=" * 60)
        print("Automation cycle complete!")
        print(
            f"   Processed: {summary.processed_jobs} | "
            f"Sent: {summary.successful_jobs} | Failed: {summary.failed_jobs}"
        )
        counts = service.jobs.count_by_status()
        print(
            f"   Queue: {counts['pending']} pending | {counts['completed']} completed | "
            f"{counts['failed']} failed"
        )
        print("=" * 60 + "\n")
        return 0

    except Exception as e:
        logger.exception(f"Automation run failed: {e}")
        return 1

    finally:
        service.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Send due review follow-ups")
    parser.add_argument("--test", action="store_true", help="render but do not send")
    args = parser.parse_args(argv)
    return run_automation(test_mode=args.test)


if __name__ == "__main__":
    sys.exit(main())
