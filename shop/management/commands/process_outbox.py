"""
Management command to process outbox events (notification worker).
"""
import time

from django.core.management.base import BaseCommand

from shop.infra.notifier import OrderNotifier


class Command(BaseCommand):
    help = 'Deliver order notifications from the outbox'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=100,
            help='Maximum number of events to process in one run',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Run in loop (for production)',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=3,
            help='Interval between loops in seconds',
        )

    def handle(self, *args, **options):
        limit = options['limit']
        notifier = OrderNotifier()

        if not options['loop']:
            processed = notifier.process_outbox_events(limit=limit)
            self.stdout.write(self.style.SUCCESS(f'Processed {processed} events'))
            return

        interval = options['interval']
        self.stdout.write(f'Starting notifier in loop mode (interval: {interval}s)')
        while True:
            try:
                processed = notifier.process_outbox_events(limit=limit)
                if processed > 0:
                    self.stdout.write(self.style.SUCCESS(f'Processed {processed} events'))
                time.sleep(interval)
            except KeyboardInterrupt:
                self.stdout.write(self.style.WARNING('Stopped by user'))
                break
