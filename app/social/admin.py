"""
Django admin configuration for the social graph.
"""

from django.contrib import admin

from social.models import Block, Connection, Follow, Hobby, HobbyCategory, UserHobby


@admin.register(Connection)
class ConnectionAdmin(admin.ModelAdmin):
    list_display = ("requester", "recipient", "status", "created_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("requester__email", "recipient__email")
    raw_id_fields = ("requester", "recipient")


@admin.register(Follow)
class FollowAdmin(admin.ModelAdmin):
    list_display = ("follower", "following", "created_at")
    raw_id_fields = ("follower", "following")


@admin.register(Block)
class BlockAdmin(admin.ModelAdmin):
    list_display = ("blocker", "blocked", "reason", "created_at")
    search_fields = ("blocker__email", "blocked__email")
    raw_id_fields = ("blocker", "blocked")


@admin.register(HobbyCategory)
class HobbyCategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "icon")
    search_fields = ("name",)


@admin.register(Hobby)
class HobbyAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "time_commitment", "cost_level")
    list_filter = ("category", "time_commitment", "cost_level")
    search_fields = ("name",)


@admin.register(UserHobby)
class UserHobbyAdmin(admin.ModelAdmin):
    list_display = ("user", "hobby", "priority", "is_favorite")
    raw_id_fields = ("user",)
