# core/api.py
from rest_framework.routers import DefaultRouter

from sites.views import SiteLiteViewSet, SiteViewSet

router = DefaultRouter()
router.register(r"sites/sites-lite", SiteLiteViewSet, basename="sites-lite")
router.register(r"sites", SiteViewSet, basename="site")
