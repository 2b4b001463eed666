"""Create any missing default notification types."""

from django.core.management.base import BaseCommand

from notifications.models import NotificationType


class Command(BaseCommand):
    help = "Create the default notification types that do not exist yet"

    def handle(self, *args, **options):
        created = NotificationType.objects.ensure_defaults()
        total = NotificationType.objects.count()
        self.stdout.write(self.style.SUCCESS(f"Created {created} notification type(s), {total} in total"))
