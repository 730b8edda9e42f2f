"""
Django management command to check StockItem counters against the shipment ledger
and show the most recent stock audit entries
"""
import json

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.db.models import Sum
from backend.core.cache_utils import invalidate_stock_cache
from backend.core.models import AuditLog
from backend.core.utils import create_audit_log
from backend.inventory.models import StockItem
from backend.shipments.models import InboundShipment, OutboundShipment


def _total(queryset):
    return queryset.aggregate(total=Sum('quantity'))['total'] or 0


class Command(BaseCommand):
    help = 'Check reserved outbound quantities against live outbound shipments'

    def add_arguments(self, parser):
        parser.add_argument(
            '--sku',
            help='Check specific SKU only',
        )
        parser.add_argument(
            '--show-all',
            action='store_true',
            help='Show all SKUs, not just discrepancies',
        )
        parser.add_argument(
            '--fix-reserved',
            action='store_true',
            help='Rewrite drifted reserved_outbound_quantity values from the outbound shipments',
        )
        parser.add_argument(
            '--audit-limit',
            type=int,
            default=20,
            help='Number of recent stock audit logs to show (default: 20)',
        )

    def handle(self, *args, **options):
        sku = options.get('sku')
        show_all = options.get('show_all', False)
        fix_reserved = options.get('fix_reserved', False)
        audit_limit = options.get('audit_limit', 20)

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS("STOCK vs SHIPMENT LEDGER ANALYSIS"))
        self.stdout.write("=" * 80)

        stock_items = StockItem.objects.all().order_by('sku')
        if sku:
            stock_items = stock_items.filter(sku=sku)
            if not stock_items.exists():
                raise CommandError(f"SKU not found: {sku}")

        self.stdout.write(f"Total SKUs: {stock_items.count()}")
        self.stdout.write("")

        discrepancies = []
        for stock in stock_items:
            inbound_total = _total(InboundShipment.objects.filter(sku=stock))
            outbound_total = _total(OutboundShipment.objects.filter(sku=stock))
            difference = stock.reserved_outbound_quantity - outbound_total

            if difference:
                discrepancies.append((stock.sku, stock.reserved_outbound_quantity, outbound_total))

            if show_all or difference:
                self.stdout.write(f"SKU: {stock.sku} ({stock.warehouse_code})")
                self.stdout.write(f"  On hand: {stock.on_hand_quantity}")
                self.stdout.write(f"  Reserved: {stock.reserved_outbound_quantity}")
                self.stdout.write(f"  Inbound total: {inbound_total}")
                self.stdout.write(f"  Outbound total: {outbound_total}")
                if difference:
                    self.stdout.write(self.style.WARNING(f"  Reserved differs from outbound total by {difference:+d}"))
                else:
                    self.stdout.write(self.style.SUCCESS("  Reserved matches outbound shipments"))
                self.stdout.write("")

        if discrepancies and fix_reserved:
            for item_sku, _, _ in discrepancies:
                self._fix_reserved(item_sku)
            discrepancies = []

        self._show_recent_audit_logs(sku, audit_limit)

        self.stdout.write("=" * 80)
        if discrepancies:
            for item_sku, reserved, outbound_total in discrepancies:
                self.stdout.write(self.style.WARNING(f"  - {item_sku}: reserved {reserved}, outbound {outbound_total}"))
            raise CommandError(f"{len(discrepancies)} SKU(s) out of sync; rerun with --fix-reserved to repair")
        self.stdout.write(self.style.SUCCESS("No discrepancies found"))

    def _fix_reserved(self, sku):
        with transaction.atomic():
            stock = StockItem.objects.select_for_update().get(sku=sku)
            outbound_total = _total(OutboundShipment.objects.filter(sku=stock))
            old_reserved = stock.reserved_outbound_quantity
            stock.reserved_outbound_quantity = outbound_total
            stock.save(update_fields=['reserved_outbound_quantity', 'updated_at'])
            create_audit_log(
                action='stock_adjust',
                model_name='StockItem',
                object_id=stock.id,
                object_name=stock.product_name,
                sku=stock.sku,
                changes={'reserved_outbound_quantity': {'old': old_reserved, 'new': outbound_total}},
            )
            transaction.on_commit(invalidate_stock_cache)
        self.stdout.write(self.style.SUCCESS(f"Fixed {sku}: reserved {old_reserved} -> {outbound_total}"))

    def _show_recent_audit_logs(self, sku, audit_limit):
        if audit_limit <= 0:
            return
        recent_logs = AuditLog.objects.filter(action__in=['stock_inbound', 'stock_outbound', 'stock_adjust'])
        if sku:
            recent_logs = recent_logs.filter(sku=sku)
        recent_logs = recent_logs.order_by('-created_at')[:audit_limit]

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS(f"RECENT STOCK AUDIT LOGS (last {audit_limit})"))
        self.stdout.write("=" * 80)
        if not recent_logs:
            self.stdout.write("  No stock-related audit logs found.")
            return
        for log in recent_logs:
            self.stdout.write(f"[{log.created_at.strftime('%Y-%m-%d %H:%M:%S')}] {log.action} {log.sku}")
            self.stdout.write(f"  Reference: {log.object_reference or log.object_id}")
            if log.changes:
                self.stdout.write(f"  Changes: {json.dumps(log.changes)}")
