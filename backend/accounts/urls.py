# accounts/urls.py
"""
URL configuration for the auth API.

Endpoints:
- token/          - Obtain a JWT pair (email + password)
- token/refresh/  - Refresh an access token
- me/             - Current user, active company and role
- switch-company/ - Change the active company
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import MeView, SwitchCompanyView

app_name = "accounts"

urlpatterns = [
    path("token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("me/", MeView.as_view(), name="me"),
    path("switch-company/", SwitchCompanyView.as_view(), name="switch-company"),
]
