"""
Django admin configuration for posts.
"""

from django.contrib import admin

from posts.models import Comment, Poll, PollOption, Post, PostMedia


class PostMediaInline(admin.TabularInline):
    model = PostMedia
    extra = 0


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ("id", "author", "is_pinned", "like_count", "comment_count", "is_deleted", "created_at")
    list_filter = ("is_pinned", "is_deleted")
    search_fields = ("content", "author__email")
    raw_id_fields = ("author", "pinned_by")
    inlines = [PostMediaInline]

    def get_queryset(self, request):
        return Post.all_objects.all()


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ("id", "post", "author", "is_deleted", "created_at")
    list_filter = ("is_deleted",)
    raw_id_fields = ("post", "author")

    def get_queryset(self, request):
        return Comment.all_objects.all()


class PollOptionInline(admin.TabularInline):
    model = PollOption
    extra = 0


@admin.register(Poll)
class PollAdmin(admin.ModelAdmin):
    list_display = ("question", "post", "end_date")
    raw_id_fields = ("post",)
    inlines = [PollOptionInline]
