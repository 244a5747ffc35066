# receipts/api.py
from django.core.exceptions import ValidationError
from django.db import transaction
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
from purchasing.models import MaterialPurchase
from purchasing.reconciliation import attach_receipt, detach_receipt, reaggregate_purchase
from sites.models import UNALLOCATED_SITE_ID
from sites.utils import is_unallocated
from .ledger import (
    create_receipt, create_receipts, delete_receipt, refresh_material_name,
    refresh_material_names, update_receipt,
)
from .models import MaterialReceipt


def _num(value):
    return None if value is None else str(value)


def serialize_receipt(r):
    return {
        "id": r.id,
        "date": r.date.isoformat() if r.date else None,
        "receipt_number": r.receipt_number or "",
        "vehicle_number": r.vehicle_number,
        "material_id": r.material_id,
        "material_name": r.material_name,
        "filled_weight": _num(r.filled_weight),
        "empty_weight": _num(r.empty_weight),
        "net_weight": _num(r.net_weight),
        "quantity": _num(r.quantity),
        "vendor_id": r.vendor_id,
        "vendor_name": r.vendor_name or "",
        "site_id": r.site_id if r.site_id else UNALLOCATED_SITE_ID,
        "site_name": r.site_name or "",
        "linked_purchase_id": r.linked_purchase_id,
        "created_at": r.created_at.isoformat() if r.created_at else None,
        "updated_at": r.updated_at.isoformat() if r.updated_at else None,
    }


def _bad_request(exc):
    return Response({"error": "; ".join(exc.messages)}, status=status.HTTP_400_BAD_REQUEST)


class ReceiptListCreateView(APIView):
    """
    GET  /api/v1/material-receipts?linked=&material_id=&vendor_id=&site_id=&purchase_id=&date_from=&date_to=&q=&page=&page_size=
    POST /api/v1/material-receipts  { date, vehicle_number, material_id, site_id, filled_weight, empty_weight,
                                      receipt_number?, quantity?, vendor_id?, vendor_name?, site_name? }
    POST /api/v1/material-receipts  { receipts: [ {...}, ... ] }   (batch, all-or-nothing)
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get(self, request):
        org = resolve_request_organization(request)
        if not org:
            return Response({"results": [], "count": 0}, status=200)

        page = int(request.GET.get("page") or "1")
        page_size = int(request.GET.get("page_size") or "50")

        qs = MaterialReceipt.objects.filter(organization=org)

        linked = (request.GET.get("linked") or "").strip().lower()
        if linked in ("true", "1"):
            qs = qs.filter(linked_purchase__isnull=False)
        elif linked in ("false", "0"):
            qs = qs.filter(linked_purchase__isnull=True)

        for param, lookup in (("material_id", "material_id"), ("vendor_id", "vendor_id"), ("purchase_id", "linked_purchase_id")):
            value = request.GET.get(param)
            if value:
                qs = qs.filter(**{lookup: value})

        site_id = request.GET.get("site_id")
        if site_id:
            qs = qs.filter(site__isnull=True) if is_unallocated(site_id) else qs.filter(site_id=site_id)

        date_from = parse_date(request.GET.get("date_from") or "")
        date_to = parse_date(request.GET.get("date_to") or "")
        if date_from:
            qs = qs.filter(date__gte=date_from)
        if date_to:
            qs = qs.filter(date__lte=date_to)

        q = (request.GET.get("q") or "").strip()
        if q:
            qs = qs.filter(
                Q(vehicle_number__icontains=q) |
                Q(receipt_number__icontains=q) |
                Q(material_name__icontains=q) |
                Q(vendor_name__icontains=q)
            )

        total = qs.count()
        rows = refresh_material_names(qs[(page - 1) * page_size : page * page_size])
        return Response({"results": [serialize_receipt(r) for r in rows], "count": total}, status=200)

    def post(self, request):
        org = resolve_request_organization(request)
        if not org:
            return Response({"error": "No organization"}, status=400)

        payload = request.data or {}
        try:
            if "receipts" in payload:
                rows = payload.get("receipts")
                if not isinstance(rows, list):
                    return Response({"error": "receipts must be a list"}, status=400)
                receipts = create_receipts(org, rows, user=request.user)
                return Response(
                    {"results": [serialize_receipt(r) for r in receipts], "count": len(receipts)}, status=201
                )
            receipt = create_receipt(org, payload, user=request.user)
        except ValidationError as exc:
            return _bad_request(exc)
        return Response(serialize_receipt(receipt), status=201)


def _purchase_for(org, raw_id, field):
    try:
        purchase_id = int(raw_id)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")
    return get_object_or_404(MaterialPurchase, id=purchase_id, organization=org)


def _with_submission(receipt, submission):
    data = serialize_receipt(receipt)
    data["warnings"] = submission.warnings if submission is not None else []
    return data


class ReceiptDetailView(APIView):
    """
    GET    /api/v1/material-receipts/<id>
    PATCH  /api/v1/material-receipts/<id>  { any create field, linked_purchase_id?, unit_rate? }
           linked_purchase_id: <id> adds the receipt to that purchase (re-aggregated), null removes it.
           The whole request is applied or rejected as one unit.
    DELETE /api/v1/material-receipts/<id>  (409 while linked)
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get_obj(self, request, pk):
        org = resolve_request_organization(request)
        return get_object_or_404(
            MaterialReceipt.objects.select_related("organization", "material"), id=pk, organization=org
        )

    def get(self, request, pk):
        receipt = refresh_material_name(self.get_obj(request, pk))
        return Response(serialize_receipt(receipt), status=200)

    def patch(self, request, pk):
        receipt = self.get_obj(request, pk)
        org = receipt.organization
        payload = {key: value for key, value in (request.data or {}).items()}
        relink = "linked_purchase_id" in payload
        purchase_id = payload.pop("linked_purchase_id", None)
        unit_rate = payload.pop("unit_rate", None)
        submission = None

        try:
            with transaction.atomic():
                if relink and purchase_id in (None, ""):
                    submission = detach_receipt(org, receipt.id, user=request.user)
                    receipt.refresh_from_db()
                if payload:
                    receipt = update_receipt(receipt, payload, user=request.user)
                    if receipt.is_linked and not relink:
                        # linked purchase totals follow the edited quantity
                        submission = reaggregate_purchase(receipt.linked_purchase, user=request.user)
                if relink and purchase_id not in (None, ""):
                    purchase = _purchase_for(org, purchase_id, "linked_purchase_id")
                    submission = attach_receipt(purchase, receipt.id, unit_rate, user=request.user)
                    receipt.refresh_from_db()
        except ValidationError as exc:
            return _bad_request(exc)
        except ConflictError as exc:
            return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)
        return Response(_with_submission(receipt, submission), status=200)

    def delete(self, request, pk):
        receipt = self.get_obj(request, pk)
        try:
            delete_receipt(receipt, user=request.user)
        except ConflictError as exc:
            return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ReceiptLinkView(APIView):
    """
    POST /api/v1/material-receipts/<id>/link  { purchase_id, unit_rate? }
    Adds the receipt to the purchase and re-aggregates its totals and the material stock.
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def post(self, request, pk):
        org = resolve_request_organization(request)
        receipt = get_object_or_404(MaterialReceipt, id=pk, organization=org)
        payload = request.data or {}
        if payload.get("purchase_id") in (None, ""):
            return Response({"error": "purchase_id required"}, status=400)
        try:
            purchase = _purchase_for(org, payload.get("purchase_id"), "purchase_id")
            submission = attach_receipt(purchase, receipt.id, payload.get("unit_rate"), user=request.user)
        except ValidationError as exc:
            return _bad_request(exc)
        except ConflictError as exc:
            return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)
        receipt.refresh_from_db()
        return Response(_with_submission(receipt, submission), status=200)


class ReceiptUnlinkView(APIView):
    """
    POST /api/v1/material-receipts/<id>/unlink
    Removes the receipt from its purchase and re-aggregates what is left.
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def post(self, request, pk):
        org = resolve_request_organization(request)
        receipt = get_object_or_404(MaterialReceipt, id=pk, organization=org)
        try:
            submission = detach_receipt(org, receipt.id, user=request.user)
        except ValidationError as exc:
            return _bad_request(exc)
        receipt.refresh_from_db()
        return Response(_with_submission(receipt, submission), status=200)
