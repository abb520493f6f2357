import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.reviews.models import Review, ReviewKind, ReviewStatus, Tag, TagCategory


MOVIE_ID = 550
OTHER_MOVIE_ID = 680


def _client_for(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def review_user(db):
    """Create and return the review author."""
    return User.objects.create_user(
        email='reviewer@example.com',
        password='TestPass123!',
        user_name='reviewer',
        display_name='Movie Reviewer',
    )


@pytest.fixture
def review_other_user(db):
    """Create and return a user who votes on others' reviews."""
    return User.objects.create_user(
        email='review_other@example.com',
        password='TestPass123!',
        user_name='review_other',
        display_name='Review Other User',
    )


@pytest.fixture
def third_user(db):
    """Create and return a second voter."""
    return User.objects.create_user(
        email='third@example.com',
        password='TestPass123!',
        user_name='third',
    )


@pytest.fixture
def moderator(db):
    """Create and return a staff user acting as moderator."""
    return User.objects.create_user(
        email='moderator@example.com',
        password='TestPass123!',
        user_name='moderator',
        is_staff=True,
    )


@pytest.fixture
def review_auth_client(review_user):
    """Return API client authenticated as review author."""
    return _client_for(review_user)


@pytest.fixture
def review_other_client(review_other_user):
    """Return API client authenticated as other user."""
    return _client_for(review_other_user)


@pytest.fixture
def moderator_client(moderator):
    """Return API client authenticated as moderator."""
    return _client_for(moderator)


@pytest.fixture
def tag_acting(db):
    """Create an acting tag."""
    return Tag.objects.create(name='Performances', category=TagCategory.ACTING)


@pytest.fixture
def tag_story(db):
    """Create a content tag."""
    return Tag.objects.create(name='Story', category=TagCategory.CONTENT, display_order=1)


@pytest.fixture
def tag_inactive(db):
    """Create a retired tag."""
    return Tag.objects.create(name='3D', category=TagCategory.AUDIO_VISUAL, is_active=False)


@pytest.fixture
def make_review(db, review_user):
    """
    Factory writing a review row directly, bypassing the lifecycle rules.
    """
    def _make(author=None, movie_id=MOVIE_ID, kind=ReviewKind.FREEFORM,
              status=ReviewStatus.PENDING, rating=7.5, **extra):
        if kind == ReviewKind.FREEFORM:
            extra.setdefault('body', 'Great pacing, weak ending.')
        else:
            extra.setdefault('tags', [{'tag_id': 1, 'rating': 8}])
        return Review.objects.create(
            author=author or review_user,
            movie_id=movie_id,
            kind=kind,
            status=status,
            rating=rating,
            **extra,
        )
    return _make


@pytest.fixture
def freeform_review(make_review):
    """A pending freeform review by review_user."""
    return make_review()


@pytest.fixture
def released_review(make_review):
    """A released freeform review by review_user."""
    return make_review(status=ReviewStatus.RELEASED)


@pytest.fixture
def tag_review(make_review):
    """A pending structured tag review by review_user."""
    return make_review(kind=ReviewKind.STRUCTURED_TAGS, rating=8.0)
