from django.urls import path, include
from rest_framework.routers import SimpleRouter
from . import views

app_name = 'reviews'

# Router for ViewSets
# Note: tags must be registered BEFORE empty prefix to avoid URL conflicts
router = SimpleRouter()
router.register(r'tags', views.TagViewSet, basename='tag')
router.register(r'', views.ReviewViewSet, basename='review')

urlpatterns = [
    # Review ViewSet routes
    # GET    /api/reviews/                        - List visible reviews
    # POST   /api/reviews/                        - Create review
    # GET    /api/reviews/{id}/                   - Get review
    # PUT    /api/reviews/{id}/                   - Update review
    # DELETE /api/reviews/{id}/                   - Soft-delete review

    # Custom review actions
    # GET    /api/reviews/mine/                   - Current user's reviews
    # GET    /api/reviews/moderation/             - Moderator listing
    # GET    /api/reviews/movie/{movie_id}/       - Visible reviews of a movie
    # GET    /api/reviews/movie/{movie_id}/mine/  - Current user's reviews of a movie
    # GET    /api/reviews/movie/{movie_id}/summary/ - Movie review summary
    # POST   /api/reviews/{id}/approve/           - Release a pending review
    # POST   /api/reviews/{id}/vote/              - Fair/unfair vote
    # POST   /api/reviews/{id}/recalculate_score/ - Repair score drift
    # POST   /api/reviews/votes/status/           - Batch vote status

    # Tag endpoints
    # GET    /api/reviews/tags/                   - List active tags
    # GET    /api/reviews/tags/{id}/              - Get tag

    # Include router URLs
    path('', include(router.urls)),
]
