"""
Django admin configuration for chat models.

- Conversations with participants and rules inline
- Message moderation (soft deleted messages included)
- Join request review
"""

from django.contrib import admin

from chat.models import (
    Conversation,
    DirectConversationPair,
    GroupJoinRequest,
    GroupRule,
    Message,
    MessageAttachment,
    Participant,
)


class ParticipantInline(admin.TabularInline):
    model = Participant
    extra = 0
    readonly_fields = ["joined_at", "left_at", "left_voluntarily", "removed_by", "last_read_at"]
    raw_id_fields = ["user", "removed_by", "last_read_message"]


class GroupRuleInline(admin.TabularInline):
    model = GroupRule
    extra = 0


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "conversation_type",
        "title",
        "visibility",
        "participant_count",
        "max_capacity",
        "is_deleted",
        "last_message_at",
    ]
    list_filter = ["conversation_type", "visibility", "is_deleted", "created_at"]
    search_fields = ["title", "subject_category", "id"]
    readonly_fields = ["created_at", "updated_at", "deleted_at", "participant_count", "last_message_at"]
    raw_id_fields = ["created_by"]
    inlines = [ParticipantInline, GroupRuleInline]
    ordering = ["-created_at"]

    def get_queryset(self, request):
        return Conversation.all_objects.all()


@admin.register(DirectConversationPair)
class DirectConversationPairAdmin(admin.ModelAdmin):
    list_display = ["conversation", "user_lower", "user_higher"]
    raw_id_fields = ["conversation", "user_lower", "user_higher"]


class MessageAttachmentInline(admin.TabularInline):
    model = MessageAttachment
    extra = 0


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ["id", "conversation", "sender", "message_type", "content_preview", "is_deleted", "created_at"]
    list_filter = ["message_type", "is_deleted", "created_at"]
    search_fields = ["content", "sender__email"]
    readonly_fields = ["created_at", "updated_at", "deleted_at", "reply_count", "client_id"]
    raw_id_fields = ["conversation", "sender", "parent_message"]
    inlines = [MessageAttachmentInline]
    ordering = ["-created_at"]

    @admin.display(description="Content Preview")
    def content_preview(self, obj: Message) -> str:
        if len(obj.content) > 50:
            return obj.content[:50] + "..."
        return obj.content


@admin.register(GroupJoinRequest)
class GroupJoinRequestAdmin(admin.ModelAdmin):
    list_display = ["id", "conversation", "user", "status", "reviewed_by", "created_at"]
    list_filter = ["status"]
    raw_id_fields = ["conversation", "user", "reviewed_by"]
