"""
Management command to apply pending score jobs.

Each fairness vote enqueues a score job; this worker applies the score
delta to the review and its author.

Usage:
    python manage.py process_score_jobs                 # one pass (cron)
    python manage.py process_score_jobs --loop          # keep polling
    python manage.py process_score_jobs --retry-failed  # requeue parked jobs first
"""

import time

from django.core.management.base import BaseCommand

from apps.reviews.services import process_due_score_jobs, requeue_failed_score_jobs


class Command(BaseCommand):
    help = 'Apply pending review score jobs'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=None,
            help='Maximum jobs per pass (defaults to SCORE_JOBS["BATCH_SIZE"])',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Keep polling for new jobs until interrupted',
        )
        parser.add_argument(
            '--interval',
            type=float,
            default=5.0,
            help='Seconds to sleep between passes when idle in --loop mode',
        )
        parser.add_argument(
            '--retry-failed',
            action='store_true',
            help='Requeue jobs parked as failed before processing',
        )

    def handle(self, *args, **options):
        if options['retry_failed']:
            requeued = requeue_failed_score_jobs()
            self.stdout.write(f'Requeued {requeued} failed job(s)')

        if not options['loop']:
            self.run_pass(options['limit'])
            return

        self.stdout.write('Processing score jobs (Ctrl+C to stop)...')
        try:
            while True:
                counts = self.run_pass(options['limit'])
                if not any(counts.values()):
                    time.sleep(options['interval'])
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nStopped.'))

    def run_pass(self, limit):
        counts = process_due_score_jobs(limit=limit)

        if counts['failed']:
            self.stdout.write(self.style.WARNING(
                f"Applied {counts['applied']}, skipped {counts['skipped']}, failed {counts['failed']}"
            ))
        elif counts['applied'] or counts['skipped']:
            self.stdout.write(self.style.SUCCESS(
                f"Applied {counts['applied']}, skipped {counts['skipped']}"
            ))
        else:
            self.stdout.write('No score jobs due.')

        return counts
