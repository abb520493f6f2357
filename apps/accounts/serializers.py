from rest_framework import serializers
from .models import User
from apps.reviews.serializers import UserReviewStatsSerializer


class UserSerializer(serializers.ModelSerializer):
    """Own profile, as returned to the signed-in user."""

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'user_name',
            'display_name',
            'avatar',
            'is_staff',
            'communication_score',
            'created_at',
            'last_login',
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.Serializer):
    display_name = serializers.CharField(required=False, allow_blank=True)
    avatar = serializers.CharField(required=False, allow_blank=True)


class UserPublicSerializer(serializers.ModelSerializer):
    """Public user info (for displaying next to reviews)."""

    display_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'user_name', 'display_name', 'avatar', 'communication_score', 'created_at']
        read_only_fields = fields

    def get_display_name(self, obj):
        return obj.get_display_name()


class UserProfileResponseSerializer(serializers.Serializer):
    user = UserPublicSerializer()
    review_stats = UserReviewStatsSerializer()
