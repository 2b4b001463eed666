"""
Django admin configuration for the planner.
"""

from django.contrib import admin

from planner.models import Announcement, AnnouncementMedia, Event, EventAttendee, Todo


@admin.register(Todo)
class TodoAdmin(admin.ModelAdmin):
    list_display = ("title", "user", "priority", "status", "due_date")
    list_filter = ("status", "priority")
    search_fields = ("title", "user__email")
    raw_id_fields = ("user",)


class EventAttendeeInline(admin.TabularInline):
    model = EventAttendee
    extra = 0
    raw_id_fields = ("student",)


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("title", "organizer", "start_time", "end_time", "is_recurring", "max_attendees")
    list_filter = ("is_recurring", "recurrence_pattern")
    search_fields = ("title", "location")
    raw_id_fields = ("organizer",)
    inlines = [EventAttendeeInline]


class AnnouncementMediaInline(admin.TabularInline):
    model = AnnouncementMedia
    extra = 0


@admin.register(Announcement)
class AnnouncementAdmin(admin.ModelAdmin):
    list_display = ("title", "author", "created_at", "is_deleted")
    list_filter = ("is_deleted",)
    search_fields = ("title", "content")
    raw_id_fields = ("author",)
    inlines = [AnnouncementMediaInline]

    def get_queryset(self, request):
        return Announcement.all_objects.all()
