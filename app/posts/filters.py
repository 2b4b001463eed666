import django_filters as filters

from posts.models import Post


class PostFilter(filters.FilterSet):
    author = filters.NumberFilter(field_name="author_id")
    start_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end_date = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    search = filters.CharFilter(field_name="content", lookup_expr="icontains")

    class Meta:
        model = Post
        fields = ["author", "is_pinned", "start_date", "end_date", "search"]
