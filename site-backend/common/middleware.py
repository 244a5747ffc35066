# common/middleware.py
from django.conf import settings
from django.http import HttpResponse, JsonResponse
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken

from organizations.models import Organization, OrganizationUser


AUTH_WHITELIST = (
    "/admin",
    "/api/v1/docs",
    "/api/v1/schema",
    "/api/v1/auth",        # allow token/refresh/verify
    "/static/",
)


def _with_cors(request, response, expose=False):
    origin = request.headers.get("Origin")
    if origin:
        response["Access-Control-Allow-Origin"] = origin
        response["Access-Control-Allow-Credentials"] = "true"
        if expose:
            response["Access-Control-Expose-Headers"] = "Content-Disposition"
    return response


class OrganizationContextMiddleware:
    """
    Authenticates the bearer token and binds ``request.organization``.

    The organization comes from the token's ``organization_id`` /
    ``organization_code`` claims, falling back to the X-Organization-Id /
    X-Organization-Code headers. Non-members get a 403.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.method == "OPTIONS":
            response = HttpResponse()
            origin = request.headers.get("Origin")
            if origin:
                response["Access-Control-Allow-Origin"] = origin
                response["Access-Control-Allow-Credentials"] = "true"
            else:
                response["Access-Control-Allow-Origin"] = "*"
            response["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            response["Access-Control-Allow-Headers"] = (
                "Content-Type, Authorization, X-Organization-Id, X-Organization-Code"
            )
            response["Access-Control-Max-Age"] = "86400"
            return response
        if request.path.startswith(AUTH_WHITELIST):
            request.organization = None
            return self.get_response(request)

        static_url = getattr(settings, "STATIC_URL", None)
        if static_url and request.path.startswith("/" + static_url.lstrip("/")):
            return self.get_response(request)

        try:
            auth_result = JWTAuthentication().authenticate(request)
        except (InvalidToken, AuthenticationFailed):
            return _with_cors(request, JsonResponse({"detail": "Invalid token"}, status=401))
        if not auth_result:
            return _with_cors(request, JsonResponse({"detail": "Authentication required"}, status=401))
        user, token = auth_result

        # Resolve organization: prefer JWT claims, then allow header fallback
        org_id = token.payload.get("organization_id") or request.headers.get("X-Organization-Id")
        org_code = token.payload.get("organization_code") or request.headers.get("X-Organization-Code")

        organization = None
        if org_id:
            try:
                organization = Organization.objects.filter(id=int(org_id), is_active=True).first()
            except (TypeError, ValueError):
                organization = None
        if not organization and org_code:
            organization = Organization.objects.filter(code=str(org_code), is_active=True).first()

        if not organization:
            return _with_cors(request, JsonResponse({"detail": "Invalid organization"}, status=403))

        is_member = user.is_superuser or OrganizationUser.objects.filter(
            user=user, organization=organization, is_active=True
        ).exists()
        if not is_member:
            return _with_cors(
                request, JsonResponse({"detail": "User not a member of organization"}, status=403)
            )

        request.user = user
        request.organization = organization

        response = self.get_response(request)
        return _with_cors(request, response, expose=True)
