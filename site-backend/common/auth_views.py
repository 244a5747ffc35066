# common/auth_views.py
from rest_framework_simplejwt.views import TokenObtainPairView
from .auth_tokens import OrganizationAwareTokenObtainPairSerializer


class OrganizationAwareTokenObtainPairView(TokenObtainPairView):
    serializer_class = OrganizationAwareTokenObtainPairSerializer
