from rest_framework import serializers
from .models import Review, ReviewKind, ReviewStatus, Tag, VoteValue
from apps.accounts.models import User


class TagSerializer(serializers.ModelSerializer):
    """Serializer for catalog tags."""

    class Meta:
        model = Tag
        fields = ['id', 'name', 'description', 'category', 'is_active', 'display_order']
        read_only_fields = fields


class ReviewAuthorSerializer(serializers.ModelSerializer):
    """Public author profile embedded in a review."""

    display_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'user_name', 'display_name', 'avatar', 'communication_score']
        read_only_fields = fields

    def get_display_name(self, obj):
        return obj.get_display_name()


class ReviewSerializer(serializers.ModelSerializer):
    """Hydrated review: author profile plus vote counts."""

    author = ReviewAuthorSerializer(read_only=True)
    fair_votes = serializers.IntegerField(read_only=True, default=0)
    unfair_votes = serializers.IntegerField(read_only=True, default=0)

    class Meta:
        model = Review
        fields = [
            'id',
            'movie_id',
            'author',
            'status',
            'kind',
            'rating',
            'body',
            'tags',
            'reject_reason',
            'score',
            'fair_votes',
            'unfair_votes',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class TagRatingSerializer(serializers.Serializer):
    """One {tag_id, rating} pair of a structured tag review."""

    tag_id = serializers.IntegerField()
    rating = serializers.IntegerField()


class ReviewContentSerializer(serializers.Serializer):
    """
    Shape of review content. Range and kind/content pairing rules are
    enforced by the lifecycle service.
    """

    kind = serializers.ChoiceField(choices=ReviewKind.choices)
    rating = serializers.FloatField()
    body = serializers.CharField(required=False, allow_null=True, allow_blank=True, trim_whitespace=False)
    tags = TagRatingSerializer(many=True, required=False, allow_null=True)


class ReviewCreateSerializer(ReviewContentSerializer):
    movie_id = serializers.IntegerField(min_value=1)


class ReviewUpdateSerializer(ReviewContentSerializer):
    """Content edit; ``status`` and ``reject_reason`` are moderator-only."""

    status = serializers.ChoiceField(choices=ReviewStatus.choices, required=False)
    reject_reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class ReviewDeleteSerializer(serializers.Serializer):
    reject_reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class VoteSerializer(serializers.Serializer):
    value = serializers.ChoiceField(choices=VoteValue.choices)


class BatchVoteStatusRequestSerializer(serializers.Serializer):
    review_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        allow_empty=False,
        max_length=100,
    )


class ReviewListQuerySerializer(serializers.Serializer):
    """Query parameters accepted by the review listings."""

    movie_id = serializers.IntegerField(required=False)
    author_id = serializers.IntegerField(required=False)
    status = serializers.CharField(required=False)
    kind = serializers.CharField(required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    email = serializers.CharField(required=False)
    page = serializers.IntegerField(required=False, default=1)
    page_size = serializers.IntegerField(required=False)


class ReviewPageSerializer(serializers.Serializer):
    items = ReviewSerializer(many=True)
    page = serializers.IntegerField()
    page_size = serializers.IntegerField()
    total_count = serializers.IntegerField()
    total_pages = serializers.IntegerField()


class MovieReviewSummarySerializer(serializers.Serializer):
    """Summary of visible reviews for a specific movie."""

    movie_id = serializers.IntegerField()
    total_reviews = serializers.IntegerField()
    average_rating = serializers.FloatField(allow_null=True)
    tag_reviews = serializers.IntegerField()
    freeform_reviews = serializers.IntegerField()


class UserReviewStatsSerializer(serializers.Serializer):
    user_id = serializers.IntegerField()
    communication_score = serializers.IntegerField()
    total_reviews = serializers.IntegerField()
    fair_reviews = serializers.IntegerField()
    unfair_reviews = serializers.IntegerField()
    average_rating = serializers.FloatField(allow_null=True)


class ServiceResultSerializer(serializers.Serializer):
    """Envelope every review endpoint responds with."""

    is_success = serializers.BooleanField()
    data = serializers.JSONField(allow_null=True)
    error_key = serializers.CharField(allow_null=True)
    error_message = serializers.CharField(allow_null=True)
