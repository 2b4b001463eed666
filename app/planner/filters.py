import django_filters as filters

from planner.models import Announcement, Event


class EventFilter(filters.FilterSet):
    organizer = filters.NumberFilter(field_name="organizer_id")
    start_after = filters.IsoDateTimeFilter(field_name="start_time", lookup_expr="gte")
    start_before = filters.IsoDateTimeFilter(field_name="start_time", lookup_expr="lte")

    class Meta:
        model = Event
        fields = ["organizer", "is_recurring", "start_after", "start_before"]


class AnnouncementFilter(filters.FilterSet):
    author = filters.NumberFilter(field_name="author_id")
    search = filters.CharFilter(method="filter_search")

    class Meta:
        model = Announcement
        fields = ["author", "search"]

    def filter_search(self, queryset, name, value):
        return queryset.filter(title__icontains=value) | queryset.filter(content__icontains=value)
