# site-backend/core/urls.py
"""
URL configuration for the site materials backend.
"""
from django.contrib import admin
from django.urls import include, path
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from common.auth_views import OrganizationAwareTokenObtainPairView
from .api import router  # single router for the viewsets


urlpatterns = [
    path("", RedirectView.as_view(url="/admin/", permanent=False)),
    path("admin/", admin.site.urls),

    # Auth
    path("api/v1/auth/token/", OrganizationAwareTokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/v1/auth/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/v1/auth/verify/", TokenVerifyView.as_view(), name="token_verify"),

    # API & docs
    path("api/v1/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/v1/docs/", SpectacularSwaggerView.as_view(url_name="schema")),
    path("api/v1/", include(router.urls)),

    path("api/v1/", include("vendors.urls", namespace="vendors")),
    path("api/v1/", include("materials.urls", namespace="materials")),
    path("api/v1/", include("receipts.urls", namespace="receipts")),
    path("api/v1/", include("purchasing.urls", namespace="purchasing")),
]
