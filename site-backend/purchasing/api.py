# purchasing/api.py
from django.core.exceptions import ValidationError
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api_mixins import resolve_request_organization
from common.exceptions import ConflictError
from common.permissions import CanMutateMaterials
from receipts.api import serialize_receipt
from .models import MaterialPurchase
from .reconciliation import delete_purchase, submit_purchase


def _num(value):
    return None if value is None else str(value)


def serialize_purchase(p, receipts=None):
    data = {
        "id": p.id,
        "material_id": p.material_id,
        "material_name": p.material_name,
        "category": p.material.category if p.material_id else None,
        "site_id": p.site_id,
        "site_name": p.site_name,
        "vendor_id": p.vendor_id,
        "vendor_name": p.vendor_name or "",
        "invoice_number": p.invoice_number or "",
        "receipt_number": p.receipt_number or "",
        "purchase_date": p.purchase_date.isoformat() if p.purchase_date else None,
        "unit": p.unit,
        "quantity": _num(p.quantity),
        "unit_rate": _num(p.unit_rate),
        "cost_per_unit": _num(p.cost_per_unit),
        "total_amount": _num(p.total_amount),
        "filled_weight": _num(p.filled_weight),
        "empty_weight": _num(p.empty_weight),
        "net_weight": _num(p.net_weight),
        "weight_unit": p.weight_unit or "",
        "consumed_quantity": _num(p.consumed_quantity),
        "remaining_quantity": _num(p.remaining_quantity),
        "linked_receipt_id": p.linked_receipt_id,
        "receipt_rates": p.receipt_rates or {},
        "created_by": p.created_by.username if p.created_by_id else None,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "updated_at": p.updated_at.isoformat() if p.updated_at else None,
    }
    if receipts is not None:
        data["receipts"] = [serialize_receipt(r) for r in receipts]
    return data


def _submission_response(submission, status_code):
    purchase = (
        MaterialPurchase.objects
        .select_related("material", "created_by")
        .get(id=submission.purchase.id)
    )
    return Response({
        "purchase": serialize_purchase(purchase, receipts=purchase.receipts.order_by("id")),
        "created": submission.created,
        "requested_links": submission.requested_links,
        "linked_count": submission.linked_count,
        "partial_link_failure": submission.partial_link_failure,
        "stock_synced": submission.stock_synced,
        "warnings": submission.warnings,
    }, status=status_code)


class PurchaseListCreateView(APIView):
    """
    GET  /api/v1/purchases?material_id=&site_id=&vendor_id=&date_from=&date_to=&q=&page=&page_size=
    POST /api/v1/purchases  { receipts: [{receipt_id, unit_rate}], site_id?, vendor_id? | vendor_name?,
                              invoice_number?, purchase_date?, receipt_number?, weight_unit?,
                              consumed_quantity?, remaining_quantity? }
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get(self, request):
        org = resolve_request_organization(request)
        if not org:
            return Response({"results": [], "count": 0}, status=200)

        page = int(request.GET.get("page") or "1")
        page_size = int(request.GET.get("page_size") or "24")

        qs = MaterialPurchase.objects.filter(organization=org).select_related("material", "created_by")
        for param in ("material_id", "site_id", "vendor_id"):
            value = request.GET.get(param)
            if value:
                qs = qs.filter(**{param: value})

        date_from = parse_date(request.GET.get("date_from") or "")
        date_to = parse_date(request.GET.get("date_to") or "")
        if date_from:
            qs = qs.filter(purchase_date__gte=date_from)
        if date_to:
            qs = qs.filter(purchase_date__lte=date_to)

        q = (request.GET.get("q") or "").strip()
        if q:
            qs = qs.filter(
                Q(material_name__icontains=q) |
                Q(vendor_name__icontains=q) |
                Q(invoice_number__icontains=q) |
                Q(site_name__icontains=q)
            )

        total = qs.count()
        rows = qs[(page - 1) * page_size : page * page_size]
        return Response({"results": [serialize_purchase(p) for p in rows], "count": total}, status=200)

    def post(self, request):
        org = resolve_request_organization(request)
        if not org:
            return Response({"error": "No organization"}, status=400)

        try:
            submission = submit_purchase(org, request.data or {}, user=request.user)
        except ValidationError as exc:
            return Response({"error": "; ".join(exc.messages)}, status=400)
        except ConflictError as exc:
            return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)
        return _submission_response(submission, status.HTTP_201_CREATED)


class PurchaseDetailView(APIView):
    """
    GET    /api/v1/purchases/<id>
    PATCH  /api/v1/purchases/<id>  { receipts?: [{receipt_id, unit_rate}], unit_rates?: {receipt_id: rate}, ...same as POST }
           omitting `receipts` keeps the current selection and rates
    DELETE /api/v1/purchases/<id>  (unlinks every receipt, re-syncs stock)
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get_obj(self, request, pk):
        org = resolve_request_organization(request)
        return get_object_or_404(
            MaterialPurchase.objects.select_related("organization", "material", "created_by"),
            id=pk, organization=org,
        )

    def get(self, request, pk):
        purchase = self.get_obj(request, pk)
        return Response(serialize_purchase(purchase, receipts=purchase.receipts.order_by("id")), status=200)

    def patch(self, request, pk):
        purchase = self.get_obj(request, pk)
        try:
            submission = submit_purchase(purchase.organization, request.data or {}, user=request.user, purchase=purchase)
        except ValidationError as exc:
            return Response({"error": "; ".join(exc.messages)}, status=400)
        except ConflictError as exc:
            return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)
        return _submission_response(submission, status.HTTP_200_OK)

    def delete(self, request, pk):
        purchase = self.get_obj(request, pk)
        unlinked = delete_purchase(purchase, user=request.user)
        return Response({"deleted": True, "unlinked_receipts": unlinked}, status=200)
