from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .permissions import IsModerator, IsReviewAuthorOrModerator, is_moderator
from .serializers import (
    BatchVoteStatusRequestSerializer,
    MovieReviewSummarySerializer,
    ReviewCreateSerializer,
    ReviewDeleteSerializer,
    ReviewListQuerySerializer,
    ReviewPageSerializer,
    ReviewSerializer,
    ReviewUpdateSerializer,
    ServiceResultSerializer,
    TagSerializer,
    VoteSerializer,
)
from .services import (
    ReviewFilters,
    ReviewListScope,
    ServiceResult,
    approve_review,
    create_review,
    delete_review,
    get_batch_vote_status,
    get_movie_review_summary,
    get_review_by_id,
    list_reviews,
    recalculate_review_score,
    run_service,
    search_tags,
    update_review,
    vote_on_review,
)


# HTTP status for each failure kind of the service envelope
ERROR_STATUS = {
    'validation_error': status.HTTP_400_BAD_REQUEST,
    'limit_exceeded': status.HTTP_400_BAD_REQUEST,
    'not_found': status.HTTP_404_NOT_FOUND,
    'conflict': status.HTTP_409_CONFLICT,
    'invalid_state': status.HTTP_409_CONFLICT,
    'forbidden': status.HTTP_403_FORBIDDEN,
    'unexpected': status.HTTP_500_INTERNAL_SERVER_ERROR,
}

LIST_FILTER_FIELDS = ('movie_id', 'author_id', 'status', 'kind', 'date_from', 'date_to', 'email')

LIST_PARAMETERS = [
    OpenApiParameter('movie_id', OpenApiTypes.INT, description='Filter by movie'),
    OpenApiParameter('author_id', OpenApiTypes.INT, description='Filter by author'),
    OpenApiParameter('status', OpenApiTypes.STR, description='pending/released/deleted'),
    OpenApiParameter('kind', OpenApiTypes.STR, description='tags/freeform'),
    OpenApiParameter('date_from', OpenApiTypes.DATE, description='Created on or after'),
    OpenApiParameter('date_to', OpenApiTypes.DATE, description='Created on or before'),
    OpenApiParameter('email', OpenApiTypes.STR, description='Author email contains'),
    OpenApiParameter('page', OpenApiTypes.INT, default=1),
    OpenApiParameter('page_size', OpenApiTypes.INT),
]


def _format_errors(errors):
    parts = []
    for field, messages in errors.items():
        if isinstance(messages, (list, tuple)):
            text = ' '.join(str(message) for message in messages)
        else:
            text = str(messages)
        parts.append(f"{field}: {text}")
    return '; '.join(parts)


def envelope_response(result, serializer_class=None, success_status=status.HTTP_200_OK):
    """Render a ServiceResult as JSON with the status matching its outcome."""
    if not result.is_success:
        return Response(
            result.as_dict(),
            status=ERROR_STATUS.get(result.error_key, status.HTTP_500_INTERNAL_SERVER_ERROR),
        )

    data = result.data
    if serializer_class is not None:
        data = serializer_class(data).data
    return Response(result.as_dict(data=data), status=success_status)


def invalid_input(serializer):
    return envelope_response(ServiceResult.fail('validation_error', _format_errors(serializer.errors)))


def forbidden(message):
    return envelope_response(ServiceResult.fail('forbidden', message))


class ReviewViewSet(viewsets.ViewSet):
    """
    ViewSet for the review lifecycle, listings and fairness votes.

    list: Publicly visible reviews (with filters)
    create: Submit a new review
    retrieve: Get a specific review
    update: Edit a review (author); moderators may also set status
    destroy: Soft-delete a review (author or moderator)
    """

    permission_classes = [IsAuthenticatedOrReadOnly, IsReviewAuthorOrModerator]
    lookup_value_regex = r"[0-9]+"

    def get_permissions(self):
        """Moderation actions require staff; other writes require login."""
        if self.action in ('moderation', 'approve', 'recalculate_score'):
            return [IsModerator()]
        if self.action in ('mine', 'movie_mine', 'vote', 'batch_vote_status'):
            return [IsAuthenticated()]
        if self.action in ('movie', 'movie_summary'):
            return [AllowAny()]
        return super().get_permissions()

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def _list(self, request, *, scope, **forced_filters):
        query = ReviewListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return invalid_input(query)

        params = query.validated_data
        filter_values = {name: params[name] for name in LIST_FILTER_FIELDS if name in params}
        filter_values.update(forced_filters)

        result = run_service(
            list_reviews,
            filters=ReviewFilters(**filter_values),
            page=params['page'],
            page_size=params.get('page_size'),
            scope=scope,
            user=request.user if request.user.is_authenticated else None,
        )
        return envelope_response(result, ReviewPageSerializer)

    @extend_schema(parameters=LIST_PARAMETERS, responses={200: ServiceResultSerializer}, tags=['reviews'])
    def list(self, request):
        """List publicly visible reviews, newest first."""
        return self._list(request, scope=ReviewListScope.PUBLIC)

    @extend_schema(parameters=LIST_PARAMETERS, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=False, methods=['get'])
    def mine(self, request):
        """All of the current user's reviews regardless of status."""
        return self._list(request, scope=ReviewListScope.MINE)

    @extend_schema(parameters=LIST_PARAMETERS, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=False, methods=['get'])
    def moderation(self, request):
        """Moderator listing: every filter, no visibility rule."""
        return self._list(request, scope=ReviewListScope.MODERATION)

    @extend_schema(parameters=LIST_PARAMETERS, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=False, methods=['get'], url_path=r'movie/(?P<movie_id>[0-9]+)')
    def movie(self, request, movie_id=None):
        """Publicly visible reviews of one movie."""
        return self._list(request, scope=ReviewListScope.PUBLIC, movie_id=int(movie_id))

    @extend_schema(parameters=LIST_PARAMETERS, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=False, methods=['get'], url_path=r'movie/(?P<movie_id>[0-9]+)/mine')
    def movie_mine(self, request, movie_id=None):
        """The current user's reviews of one movie."""
        return self._list(request, scope=ReviewListScope.MINE, movie_id=int(movie_id))

    @extend_schema(responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=False, methods=['get'], url_path=r'movie/(?P<movie_id>[0-9]+)/summary')
    def movie_summary(self, request, movie_id=None):
        """Visible review count, average rating and count per kind."""
        result = run_service(get_movie_review_summary, movie_id=int(movie_id))
        return envelope_response(result, MovieReviewSummarySerializer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @extend_schema(request=ReviewCreateSerializer, responses={201: ServiceResultSerializer}, tags=['reviews'])
    def create(self, request):
        """Submit a review; it starts out Pending."""
        serializer = ReviewCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        data = serializer.validated_data
        result = run_service(
            create_review,
            author=request.user,
            movie_id=data['movie_id'],
            kind=data['kind'],
            rating=data['rating'],
            body=data.get('body'),
            tags=data.get('tags'),
        )
        return envelope_response(result, ReviewSerializer, success_status=status.HTTP_201_CREATED)

    @extend_schema(responses={200: ServiceResultSerializer}, tags=['reviews'])
    def retrieve(self, request, pk=None):
        result = run_service(get_review_by_id, review_id=int(pk))
        return envelope_response(result, ReviewSerializer)

    @extend_schema(request=ReviewUpdateSerializer, responses={200: ServiceResultSerializer}, tags=['reviews'])
    def update(self, request, pk=None):
        """
        Edit review content. Only moderators may set ``status`` or
        ``reject_reason``.
        """
        found = run_service(get_review_by_id, review_id=int(pk))
        if not found.is_success:
            return envelope_response(found)
        if not IsReviewAuthorOrModerator().has_object_permission(request, self, found.data):
            return forbidden("You can only edit your own reviews")

        serializer = ReviewUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        data = serializer.validated_data
        moderator_fields = {'status', 'reject_reason'} & set(data)
        if moderator_fields and not is_moderator(request.user):
            return forbidden(f"Only moderators can set {', '.join(sorted(moderator_fields))}")

        result = run_service(
            update_review,
            review_id=int(pk),
            kind=data['kind'],
            rating=data['rating'],
            body=data.get('body'),
            tags=data.get('tags'),
            status=data.get('status'),
            reject_reason=data.get('reject_reason'),
        )
        return envelope_response(result, ReviewSerializer)

    @extend_schema(request=ReviewDeleteSerializer, responses={200: ServiceResultSerializer}, tags=['reviews'])
    def destroy(self, request, pk=None):
        """Soft-delete a review. A reject reason is moderator-only."""
        found = run_service(get_review_by_id, review_id=int(pk))
        if not found.is_success:
            return envelope_response(found)
        if not IsReviewAuthorOrModerator().has_object_permission(request, self, found.data):
            return forbidden("You can only delete your own reviews")

        serializer = ReviewDeleteSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        reject_reason = serializer.validated_data.get('reject_reason')
        if reject_reason and not is_moderator(request.user):
            return forbidden("Only moderators can set reject_reason")

        result = run_service(delete_review, review_id=int(pk), reject_reason=reject_reason)
        return envelope_response(result)

    @extend_schema(request=None, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        """Release a pending review."""
        result = run_service(approve_review, review_id=int(pk))
        return envelope_response(result)

    # ------------------------------------------------------------------
    # Votes and score
    # ------------------------------------------------------------------

    @extend_schema(request=VoteSerializer, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=True, methods=['post'])
    def vote(self, request, pk=None):
        """
        Cast or change a fairness vote. The score update is applied by the
        score worker after this returns.
        """
        serializer = VoteSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        result = run_service(
            vote_on_review,
            review_id=int(pk),
            voter=request.user,
            value=serializer.validated_data['value'],
        )
        return envelope_response(result)

    @extend_schema(request=BatchVoteStatusRequestSerializer, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=False, methods=['post'], url_path='votes/status')
    def batch_vote_status(self, request):
        """The current user's vote on each of the given reviews."""
        serializer = BatchVoteStatusRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_input(serializer)

        result = run_service(
            get_batch_vote_status,
            review_ids=serializer.validated_data['review_ids'],
            voter=request.user,
        )
        if result.is_success:
            result = ServiceResult.ok({str(review_id): entry for review_id, entry in result.data.items()})
        return envelope_response(result)

    @extend_schema(request=None, responses={200: ServiceResultSerializer}, tags=['reviews'])
    @action(detail=True, methods=['post'])
    def recalculate_score(self, request, pk=None):
        """Repair score drift from the review's vote rows."""
        result = run_service(recalculate_review_score, review_id=int(pk))
        if result.is_success:
            result = ServiceResult.ok({'review_id': int(pk), 'applied_delta': result.data})
        return envelope_response(result)


class TagViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for the tag catalog (read-only for users).

    list: Get active tags
    retrieve: Get a specific tag
    """

    serializer_class = TagSerializer
    permission_classes = [AllowAny]
    pagination_class = None
    lookup_value_regex = r"[0-9]+"

    def get_queryset(self):
        """Filter tags by category or search."""
        result = run_service(
            search_tags,
            search=self.request.query_params.get('search', ''),
            category=self.request.query_params.get('category') or None,
        )
        if not result.is_success:
            return search_tags().none()
        return result.data

