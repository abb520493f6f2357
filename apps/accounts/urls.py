from django.urls import path
from . import views

app_name = 'users'

urlpatterns = [
    # Current user
    path('me/', views.get_current_user, name='current-user'),
    path('me/update/', views.update_current_user, name='update-profile'),

    # Public profile with review statistics
    path('<int:pk>/', views.user_profile, name='user-detail'),
]
