"""
Factory Boy factories for notification models.

Usage:
    from notifications.tests.factories import NotificationFactory

    notification = NotificationFactory(recipient=user)
    NotificationFactory.create_batch(3, recipient=user, is_read=True)
"""

import factory
from django.utils import timezone

from authentication.tests.factories import UserFactory
from notifications.models import (
    DeliveryChannel,
    DeliveryStatus,
    DevicePlatform,
    DeviceToken,
    Notification,
    NotificationCategory,
    NotificationDelivery,
    NotificationType,
)


class NotificationTypeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = NotificationType
        django_get_or_create = ("key",)

    key = factory.Sequence(lambda n: f"test_type_{n}")
    display_name = factory.LazyAttribute(lambda o: o.key.replace("_", " ").title())
    category = NotificationCategory.SOCIAL
    title_template = "{actor_name} did something"
    body_template = ""
    is_active = True
    supports_push = True
    supports_email = False
    supports_websocket = True


class NotificationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Notification

    notification_type = factory.SubFactory(NotificationTypeFactory)
    recipient = factory.SubFactory(UserFactory)
    title = factory.Faker("sentence", nb_words=4)
    body = factory.Faker("sentence")
    is_read = False


class NotificationDeliveryFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = NotificationDelivery

    notification = factory.SubFactory(NotificationFactory)
    channel = DeliveryChannel.PUSH
    status = DeliveryStatus.PENDING


class DeviceTokenFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = DeviceToken

    user = factory.SubFactory(UserFactory)
    token = factory.Sequence(lambda n: f"device-token-{n}")
    platform = DevicePlatform.ANDROID
    last_seen = factory.LazyFunction(timezone.now)
