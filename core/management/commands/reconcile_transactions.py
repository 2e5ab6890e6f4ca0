# Reconcile Transactions Management Command
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from core.models import Conversation, Order, Product


class Command(BaseCommand):
    help = (
        'Audits completed conversations: each must have exactly one order and a '
        'deactivated product. Optionally deactivates products left available.'
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report what --fix would change without saving anything.',
        )
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Deactivate products of completed conversations that are still available.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Chunk size used when iterating conversations.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        fix = options['fix']
        batch_size = options['batch_size']

        if batch_size < 1:
            raise CommandError('--batch-size must be a positive integer.')

        self.stdout.write('Auditing completed conversations...')
        missing_orders, available_products = self.audit_completed(batch_size)
        orphan_orders = self.audit_orders()

        fixed = 0
        if available_products and (fix or dry_run):
            fixed = self.deactivate_products(available_products, dry_run)

        self.stdout.write(f'Completed conversations without an order: {len(missing_orders)}')
        self.stdout.write(f'Completed conversations with an available product: {len(available_products)}')
        self.stdout.write(f'Orders attached to a non-completed conversation: {len(orphan_orders)}')

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        elif fix:
            self.stdout.write(self.style.SUCCESS(f'Reconciliation completed. {fixed} products deactivated.'))
        elif missing_orders or available_products or orphan_orders:
            self.stdout.write(self.style.WARNING('Inconsistencies found. Run with --fix to repair product state.'))
        else:
            self.stdout.write(self.style.SUCCESS('No inconsistencies found.'))

    def audit_completed(self, batch_size):
        completed = (
            Conversation.objects
            .filter(status=Conversation.STATUS_COMPLETED)
            .select_related('product')
            .order_by('id')
            .iterator(chunk_size=batch_size)
        )
        order_conversation_ids = set(Order.objects.values_list('conversation_id', flat=True))

        missing_orders = []
        available_products = {}
        count = 0

        for conversation in completed:
            if conversation.id not in order_conversation_ids:
                missing_orders.append(conversation.id)
                self.stdout.write(
                    self.style.ERROR(f'  Conversation {conversation.id}: completed without an order')
                )

            product = conversation.product
            if product.product_available or product.stock_quantity > 0:
                available_products[product.id] = product
                self.stdout.write(
                    self.style.ERROR(
                        f'  Conversation {conversation.id}: product {product.id} ({product.name}) '
                        f'still available (stock {product.stock_quantity})'
                    )
                )

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} conversations...')

        self.stdout.write(f'Processed {count} completed conversations total.')
        return missing_orders, list(available_products.values())

    def audit_orders(self):
        orphans = list(
            Order.objects
            .exclude(conversation__status=Conversation.STATUS_COMPLETED)
            .values_list('id', 'conversation_id')
        )
        for order_id, conversation_id in orphans:
            self.stdout.write(
                self.style.ERROR(f'  Order {order_id}: conversation {conversation_id} is not completed')
            )
        return orphans

    def deactivate_products(self, products, dry_run):
        fixed = 0
        for product in products:
            if dry_run:
                self.stdout.write(f'  [DRY-RUN] Product {product.id} ({product.name}) would be marked as sold')
                continue
            with transaction.atomic():
                locked = Product.objects.select_for_update().get(pk=product.pk)
                locked.mark_as_sold()
            fixed += 1
        return fixed
