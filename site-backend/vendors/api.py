# vendors/api.py
from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api_mixins import resolve_request_organization
from common.permissions import CanMutateMaterials
from .models import Vendor

_TEXT_FIELDS = ("contact_name", "email", "phone", "address", "gst_number", "pan_number", "payment_terms", "notes")


def _serialize_vendor(v):
    return {
        "id": v.id,
        "name": v.name,
        "code": v.code or "",
        "contact_name": v.contact_name or "",
        "email": v.email or "",
        "phone": v.phone or "",
        "address": v.address or "",
        "gst_number": v.gst_number or "",
        "pan_number": v.pan_number or "",
        "payment_terms": v.payment_terms or "",
        "notes": v.notes or "",
        "is_active": v.is_active,
        "created_at": v.created_at.isoformat() if v.created_at else None,
        "updated_at": v.updated_at.isoformat() if v.updated_at else None,
    }


class VendorListCreateView(APIView):
    """
    GET  /api/v1/vendors?q=&include_inactive=&page=&page_size=
    POST /api/v1/vendors  { name, code?, contact_name?, email?, phone?, address?, gst_number?, ... }
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get(self, request):
        org = resolve_request_organization(request)
        if not org:
            return Response({"results": [], "count": 0}, status=200)

        page = int(request.GET.get("page") or "1")
        page_size = int(request.GET.get("page_size") or "50")
        q = (request.GET.get("q") or "").strip()

        qs = Vendor.objects.filter(organization=org).order_by("name")
        if (request.GET.get("include_inactive") or "").lower() not in ("1", "true"):
            qs = qs.filter(is_active=True)
        if q:
            qs = qs.filter(
                Q(name__icontains=q) |
                Q(code__icontains=q) |
                Q(email__icontains=q) |
                Q(contact_name__icontains=q)
            )

        total = qs.count()
        rows = qs[(page - 1) * page_size : page * page_size]
        return Response({"results": [_serialize_vendor(v) for v in rows], "count": total}, status=200)

    def post(self, request):
        org = resolve_request_organization(request)
        if not org:
            return Response({"error": "No organization"}, status=400)

        payload = request.data or {}
        name = (payload.get("name") or "").strip()
        if not name:
            return Response({"error": "name required"}, status=400)

        code = (payload.get("code") or "").strip()
        if code and Vendor.objects.filter(organization=org, code=code).exists():
            return Response({"error": f"Vendor with code '{code}' already exists"}, status=400)

        vendor = Vendor.objects.create(
            organization=org,
            name=name,
            code=code,
            is_active=bool(payload.get("is_active", True)),
            **{f: (payload.get(f) or "").strip() for f in _TEXT_FIELDS},
        )
        return Response(_serialize_vendor(vendor), status=201)


class VendorDetailView(APIView):
    """
    GET    /api/v1/vendors/<id>
    PATCH  /api/v1/vendors/<id>  { name?, code?, contact_name?, email?, phone?, address?, notes?, is_active? }
    DELETE /api/v1/vendors/<id>  (soft: marks inactive; receipts keep their vendor_name)
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get_object(self, pk, org):
        return get_object_or_404(Vendor, pk=pk, organization=org)

    def get(self, request, pk):
        org = resolve_request_organization(request)
        if not org:
            return Response({"error": "No organization"}, status=status.HTTP_400_BAD_REQUEST)
        return Response(_serialize_vendor(self.get_object(pk, org)), status=200)

    @transaction.atomic
    def patch(self, request, pk):
        org = resolve_request_organization(request)
        if not org:
            return Response({"error": "No organization"}, status=status.HTTP_400_BAD_REQUEST)

        vendor = self.get_object(pk, org)
        payload = request.data or {}
        update_fields = []

        if "name" in payload:
            name = (payload.get("name") or "").strip()
            if not name:
                return Response({"error": "name cannot be empty"}, status=status.HTTP_400_BAD_REQUEST)
            vendor.name = name
            update_fields.append("name")

        if "code" in payload:
            code = (payload.get("code") or "").strip()
            if code and Vendor.objects.filter(organization=org, code=code).exclude(pk=vendor.pk).exists():
                return Response(
                    {"error": f"Vendor with code '{code}' already exists"}, status=status.HTTP_400_BAD_REQUEST
                )
            vendor.code = code
            update_fields.append("code")

        for field in _TEXT_FIELDS:
            if field in payload:
                setattr(vendor, field, (payload.get(field) or "").strip())
                update_fields.append(field)

        if "is_active" in payload:
            vendor.is_active = bool(payload.get("is_active"))
            update_fields.append("is_active")

        if update_fields:
            update_fields.append("updated_at")
            vendor.save(update_fields=update_fields)
        return Response(_serialize_vendor(vendor), status=200)

    def delete(self, request, pk):
        org = resolve_request_organization(request)
        if not org:
            return Response({"error": "No organization"}, status=status.HTTP_400_BAD_REQUEST)
        vendor = self.get_object(pk, org)
        vendor.is_active = False
        vendor.save(update_fields=["is_active", "updated_at"])
        return Response(status=status.HTTP_204_NO_CONTENT)
