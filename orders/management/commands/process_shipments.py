"""
Management command that registers queued shipments with the carrier.

Usage:
    python manage.py process_shipments [--once] [--interval 15] [--batch-size 20]

Tasks are written when an order is confirmed; failed carrier calls are
rescheduled with backoff and picked up by a later cycle.
"""

import signal
import sys
import time

from django.core.management.base import BaseCommand

from orders.shipping import ShipmentDispatcher


class Command(BaseCommand):
    help = 'Register queued shipments with the shipping carrier'

    def add_arguments(self, parser):
        parser.add_argument(
            '--interval',
            type=int,
            default=15,
            help='Seconds between cycles (default: 15)',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=20,
            help='Maximum tasks handled per cycle (default: 20)',
        )
        parser.add_argument(
            '--once',
            action='store_true',
            help='Run one cycle and exit',
        )

    def handle(self, *args, **options):
        dispatcher = ShipmentDispatcher()
        batch_size = options['batch_size']

        if options['once']:
            counts = dispatcher.process_due(limit=batch_size)
            self._report(counts)
            return

        self.stdout.write(
            self.style.SUCCESS(f"Processing shipments every {options['interval']}s...")
        )
        self.stdout.write('Press Ctrl+C to stop')

        def signal_handler(sig, frame):
            self.stdout.write(self.style.WARNING('\nShutting down shipment worker...'))
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        cycle_count = 0
        try:
            while True:
                cycle_count += 1
                counts = dispatcher.process_due(limit=batch_size)
                if any(counts.values()):
                    self.stdout.write(f'[{cycle_count}] ', ending='')
                    self._report(counts)
                time.sleep(options['interval'])
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nShutting down shipment worker...'))

    def _report(self, counts):
        message = (
            f"Shipments registered: {counts['done']}, "
            f"retrying: {counts['retried']}, failed: {counts['failed']}, "
            f"skipped: {counts['skipped']}"
        )
        if counts['failed']:
            self.stdout.write(self.style.ERROR(message))
        elif counts['retried']:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))
