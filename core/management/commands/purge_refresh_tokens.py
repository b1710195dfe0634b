from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from core.services.refresh_tokens import RefreshTokenLedger
from core.services.tokens import get_token_codec


class Command(BaseCommand):
    help = "Delete expired, used and revoked refresh tokens older than --days."

    def add_arguments(self, parser):
        parser.add_argument("--days", type=int, default=30)

    def handle(self, *args, **opts):
        ledger = RefreshTokenLedger(ttl=get_token_codec().config.refresh_token_lifetime)
        cutoff = timezone.now() - timedelta(days=opts["days"])
        deleted = ledger.purge(older_than=cutoff)
        self.stdout.write(self.style.SUCCESS(f"Purged {deleted} refresh tokens."))
