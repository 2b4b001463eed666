"""
Views for notification API.

ViewSets:
    NotificationViewSet: Inbox with read-status actions
    PreferenceViewSet: User notification preferences
    NotificationTypeViewSet: Available notification types
    DeviceTokenViewSet: Push token registration
    DeliveryMetricsViewSet: Delivery metrics for admins

Endpoints:
    Notifications:
        GET /api/v1/notifications/ - List user's notifications (paginated, filtered)
        GET /api/v1/notifications/{id}/ - Get notification detail
        GET /api/v1/notifications/unread-count/ - Get unread count
        POST /api/v1/notifications/{id}/read/ - Mark single notification as read
        POST /api/v1/notifications/read-all/ - Mark all notifications as read

    Preferences:
        GET /api/v1/notifications/preferences/ - List all preferences
        PATCH /api/v1/notifications/preferences/global/ - Update global mute
        PATCH /api/v1/notifications/preferences/category/ - Update category preference
        PATCH /api/v1/notifications/preferences/type/ - Update type preference
        POST /api/v1/notifications/preferences/bulk/ - Bulk update type preferences
        POST /api/v1/notifications/preferences/reset/ - Reset to defaults

    Types:
        GET /api/v1/notifications/types/ - List available notification types

    Devices:
        GET /api/v1/notifications/devices/ - List registered push tokens
        POST /api/v1/notifications/devices/ - Register or refresh a token
        DELETE /api/v1/notifications/devices/{token}/ - Unregister a token

    Metrics:
        GET /api/v1/notifications/metrics/?days=30 - Delivery metrics (admins)
"""

from __future__ import annotations

from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from authentication.permissions import IsAdminRole
from notifications.models import DeviceToken, Notification, NotificationType
from notifications.serializers import (
    BulkPreferenceSerializer,
    CategoryPreferenceSerializer,
    DeliveryMetricsQuerySerializer,
    DeliveryMetricsSerializer,
    DeviceTokenSerializer,
    GlobalPreferenceSerializer,
    MarkAllReadResponseSerializer,
    NotificationSerializer,
    NotificationTypeSerializer,
    NotificationWithDeliverySerializer,
    ResetPreferencesResponseSerializer,
    TypePreferenceSerializer,
    UnreadCountSerializer,
    UserPreferencesResponseSerializer,
)
from notifications.services import (
    DeliveryMetricsService,
    DeviceTokenService,
    NotificationService,
    PreferenceService,
)


def _failure(result):
    return Response(result.to_response(), status=result.status_code)


def _type_preference_data(pref) -> dict:
    return {
        "type_key": pref.notification_type.key,
        "disabled": pref.disabled,
        "push_enabled": pref.push_enabled,
        "email_enabled": pref.email_enabled,
        "websocket_enabled": pref.websocket_enabled,
    }


@extend_schema_view(
    list=extend_schema(
        operation_id="list_notifications",
        summary="List notifications",
        description="Paginated notifications of the current user, newest first.",
        parameters=[
            OpenApiParameter(name="is_read", type=bool, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(
                name="type",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Filter by notification type key",
                required=False,
            ),
            OpenApiParameter(name="category", type=str, location=OpenApiParameter.QUERY, required=False),
        ],
        tags=["Notifications - Inbox"],
    ),
    retrieve=extend_schema(
        operation_id="get_notification",
        summary="Get notification",
        description="Notification detail with per-channel delivery status.",
        tags=["Notifications - Inbox"],
    ),
)
class NotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Inbox of the current user.

    Filtering:
    - ?is_read=true/false - Filter by read status
    - ?type=key - Filter by notification type key
    - ?category=social - Filter by category

    Users only ever see their own notifications; other ids return 404.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_serializer_class(self):
        if self.action == "retrieve":
            return NotificationWithDeliverySerializer
        return NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(recipient=self.request.user).select_related(
            "notification_type", "actor__profile"
        )
        if self.action == "retrieve":
            queryset = queryset.prefetch_related("deliveries")

        is_read = self.request.query_params.get("is_read")
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read.lower() == "true")

        type_key = self.request.query_params.get("type")
        if type_key:
            queryset = queryset.filter(notification_type__key=type_key)

        category = self.request.query_params.get("category")
        if category:
            queryset = queryset.filter(notification_type__category=category)

        return queryset

    @extend_schema(
        operation_id="get_unread_notification_count",
        summary="Get unread notification count",
        responses={200: UnreadCountSerializer},
        tags=["Notifications - Inbox"],
    )
    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request):
        count = NotificationService.unread_count(request.user)
        return Response(UnreadCountSerializer({"unread_count": count}).data)

    @extend_schema(
        operation_id="mark_notification_read",
        summary="Mark notification as read",
        description="Idempotent: already-read notifications return success.",
        request=None,
        responses={200: NotificationSerializer, 404: OpenApiResponse(description="Notification not found")},
        tags=["Notifications - Inbox"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        result = NotificationService.mark_as_read(self.get_object(), request.user)
        if not result.success:
            return _failure(result)
        return Response(NotificationSerializer(result.data, context=self.get_serializer_context()).data)

    @extend_schema(
        operation_id="mark_all_notifications_read",
        summary="Mark all notifications as read",
        request=None,
        responses={200: MarkAllReadResponseSerializer},
        tags=["Notifications - Inbox"],
    )
    @action(detail=False, methods=["post"], url_path="read-all")
    def read_all(self, request):
        result = NotificationService.mark_all_as_read(request.user)
        return Response(MarkAllReadResponseSerializer({"marked_count": result.data}).data)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_notification_preferences",
        summary="List notification preferences",
        responses={200: UserPreferencesResponseSerializer},
        tags=["Notifications - Preferences"],
    ),
)
class PreferenceViewSet(viewsets.ViewSet):
    """
    Notification preferences of the current user.

    Resolution order: global mute, then category, then type, then channel.
    """

    permission_classes = [IsAuthenticated]

    def list(self, request):
        result = PreferenceService.get_user_preferences(request.user)
        return Response(UserPreferencesResponseSerializer(result.data).data)

    @extend_schema(
        operation_id="update_global_notification_preference",
        summary="Update global notification preference",
        request=GlobalPreferenceSerializer,
        responses={200: GlobalPreferenceSerializer},
        tags=["Notifications - Preferences"],
    )
    @action(detail=False, methods=["patch"], url_path="global")
    def global_preference(self, request):
        serializer = GlobalPreferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PreferenceService.set_global_preference(
            user=request.user,
            all_disabled=serializer.validated_data["all_disabled"],
        )
        return Response({"all_disabled": result.data.all_disabled})

    @extend_schema(
        operation_id="update_category_notification_preference",
        summary="Update category notification preference",
        request=CategoryPreferenceSerializer,
        responses={200: CategoryPreferenceSerializer},
        tags=["Notifications - Preferences"],
    )
    @action(detail=False, methods=["patch"], url_path="category")
    def category_preference(self, request):
        serializer = CategoryPreferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PreferenceService.set_category_preference(
            user=request.user,
            category=serializer.validated_data["category"],
            disabled=serializer.validated_data["disabled"],
        )
        if not result.success:
            return _failure(result)
        return Response({"category": result.data.category, "disabled": result.data.disabled})

    @extend_schema(
        operation_id="update_type_notification_preference",
        summary="Update type notification preference",
        request=TypePreferenceSerializer,
        responses={200: TypePreferenceSerializer},
        tags=["Notifications - Preferences"],
    )
    @action(detail=False, methods=["patch"], url_path="type")
    def type_preference(self, request):
        serializer = TypePreferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PreferenceService.set_type_preference(user=request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(_type_preference_data(result.data))

    @extend_schema(
        operation_id="bulk_update_notification_preferences",
        summary="Bulk update type preferences",
        request=BulkPreferenceSerializer,
        responses={
            200: BulkPreferenceSerializer,
            207: OpenApiResponse(description="Partial success with some errors"),
        },
        tags=["Notifications - Preferences"],
    )
    @action(detail=False, methods=["post"], url_path="bulk")
    def bulk_update(self, request):
        serializer = BulkPreferenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        results = []
        errors = []
        for pref_data in serializer.validated_data["preferences"]:
            result = PreferenceService.set_type_preference(user=request.user, **pref_data)
            if result.success:
                results.append(_type_preference_data(result.data))
            else:
                errors.append({"type_key": pref_data["type_key"], "error": result.error})

        response_data = {"preferences": results}
        if errors:
            response_data["errors"] = errors
            return Response(response_data, status=status.HTTP_207_MULTI_STATUS)
        return Response(response_data)

    @extend_schema(
        operation_id="reset_notification_preferences",
        summary="Reset all preferences",
        request=None,
        responses={200: ResetPreferencesResponseSerializer},
        tags=["Notifications - Preferences"],
    )
    @action(detail=False, methods=["post"], url_path="reset")
    def reset(self, request):
        result = PreferenceService.reset_preferences(request.user)
        return Response(ResetPreferencesResponseSerializer({"deleted_count": result.data}).data)


@extend_schema_view(
    list=extend_schema(operation_id="list_notification_types", tags=["Notifications - Types"]),
    retrieve=extend_schema(operation_id="get_notification_type", tags=["Notifications - Types"]),
)
class NotificationTypeViewSet(viewsets.ReadOnlyModelViewSet):
    """Active notification types, for building the preferences screen."""

    permission_classes = [IsAuthenticated]
    serializer_class = NotificationTypeSerializer
    lookup_field = "key"
    pagination_class = None

    def get_queryset(self):
        NotificationType.objects.ensure_defaults()
        return NotificationType.objects.filter(is_active=True).order_by("category", "key")


@extend_schema_view(
    list=extend_schema(operation_id="list_device_tokens", tags=["Notifications - Devices"]),
    create=extend_schema(operation_id="register_device_token", tags=["Notifications - Devices"]),
    destroy=extend_schema(operation_id="unregister_device_token", tags=["Notifications - Devices"]),
)
class DeviceTokenViewSet(
    mixins.ListModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """Push tokens of the current user. Registering an existing token refreshes it."""

    permission_classes = [IsAuthenticated]
    serializer_class = DeviceTokenSerializer
    lookup_field = "token"
    lookup_value_regex = "[^/]+"
    pagination_class = None

    def get_queryset(self):
        return DeviceToken.objects.filter(user=self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DeviceTokenService.register(request.user, **serializer.validated_data)
        if not result.success:
            return _failure(result)
        return Response(self.get_serializer(result.data).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        result = DeviceTokenService.unregister(request.user, kwargs["token"])
        if not result.success:
            return _failure(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class DeliveryMetricsViewSet(viewsets.ViewSet):
    """Delivery success rates across channels (admins)."""

    permission_classes = [IsAuthenticated, IsAdminRole]

    @extend_schema(
        operation_id="get_notification_delivery_metrics",
        summary="Notification delivery metrics",
        description="Counts by status, channel and day, with the success rate over attempted deliveries.",
        parameters=[DeliveryMetricsQuerySerializer],
        responses={200: DeliveryMetricsSerializer},
        tags=["Notifications - Metrics"],
    )
    def list(self, request):
        query = DeliveryMetricsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = DeliveryMetricsService.summary(days=query.validated_data["days"])
        if not result.success:
            return _failure(result)
        return Response(DeliveryMetricsSerializer(result.data).data)
