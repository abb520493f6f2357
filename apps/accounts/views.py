from rest_framework import status, serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema
from .serializers import (
    ProfileUpdateSerializer,
    UserProfileResponseSerializer,
    UserPublicSerializer,
    UserSerializer,
)
from .services import (
    ProfileValidationError,
    UserNotFoundError,
    get_public_profile,
    update_profile,
)
from apps.reviews.services import get_user_review_stats


# Response serializers for API documentation
class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField()


@extend_schema(
    responses={200: UserSerializer},
    description="Get the current authenticated user's profile.",
    tags=['users'],
)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_current_user(request):
    """Get current authenticated user profile."""
    return Response(UserSerializer(request.user).data)


@extend_schema(
    request=ProfileUpdateSerializer,
    responses={
        200: UserSerializer,
        400: ErrorResponseSerializer,
    },
    description="Update the current user's display name or avatar.",
    tags=['users'],
)
@api_view(['PATCH'])
@permission_classes([IsAuthenticated])
def update_current_user(request):
    """Update user profile using service layer."""
    serializer = ProfileUpdateSerializer(data=request.data)

    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        user = update_profile(user=request.user, **serializer.validated_data)
    except ProfileValidationError as e:
        return Response(
            {'error': str(e)},
            status=status.HTTP_400_BAD_REQUEST
        )

    return Response(UserSerializer(user).data)


@extend_schema(
    responses={
        200: UserProfileResponseSerializer,
        404: ErrorResponseSerializer,
    },
    description="Public profile of a user with their review statistics.",
    tags=['users'],
)
@api_view(['GET'])
@permission_classes([AllowAny])
def user_profile(request, pk):
    """
    Get user profile by ID.

    GET /api/users/{id}/
    """
    try:
        user = get_public_profile(user_id=pk)
    except UserNotFoundError as e:
        return Response(
            {'error': str(e)},
            status=status.HTTP_404_NOT_FOUND
        )

    return Response({
        'user': UserPublicSerializer(user).data,
        'review_stats': get_user_review_stats(user_id=user.pk),
    })
