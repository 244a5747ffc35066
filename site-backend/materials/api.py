# materials/api.py
from django.core.exceptions import ValidationError
from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.api_mixins import resolve_request_organization
from common.numbers import to_decimal
from common.permissions import CanMutateMaterials
from purchasing.reconciliation import collect_stock_rollup, sync_material_master
from sites.models import UNALLOCATED_SITE_ID
from .audit import log_stock_sync
from .models import MaterialCategory, MaterialMaster
from .registry import SnapshotResult, StockSnapshot, apply_stock_snapshot, opening_balance_for


def _num(value):
    return None if value is None else str(value)


def serialize_material(m, with_allocations=True):
    data = {
        "id": m.id,
        "name": m.name,
        "category": m.category,
        "unit": m.unit,
        "standard_rate": _num(m.standard_rate),
        "hsn": m.hsn or "",
        "tax_rate": _num(m.tax_rate),
        "is_active": m.is_active,
        "quantity": _num(m.quantity),
        "consumed_quantity": _num(m.consumed_quantity),
        "opening_balance": _num(m.opening_balance),
        "stock_version": m.stock_version,
        "updated_at": m.updated_at.isoformat() if m.updated_at else None,
    }
    if with_allocations:
        data["site_allocations"] = [{
            "site_id": a.site_id,
            "site_name": a.site_name,
            "opening_balance": _num(a.opening_balance),
            "inward_qty": _num(a.inward_qty),
            "utilization_qty": _num(a.utilization_qty),
            "available_qty": _num(a.available_qty),
        } for a in m.site_allocations.all()]
    return data


class MaterialListView(APIView):
    """
    GET /api/v1/materials?q=&category=&include_inactive=&page=&page_size=
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get(self, request):
        org = resolve_request_organization(request)
        if not org:
            return Response({"results": [], "count": 0}, status=200)

        page = int(request.GET.get("page") or "1")
        page_size = int(request.GET.get("page_size") or "50")

        qs = MaterialMaster.objects.filter(organization=org).prefetch_related("site_allocations")
        if (request.GET.get("include_inactive") or "").lower() not in ("1", "true"):
            qs = qs.filter(is_active=True)
        category = (request.GET.get("category") or "").strip()
        if category:
            if category not in MaterialCategory.values:
                return Response({"error": f"Unknown category '{category}'"}, status=400)
            qs = qs.filter(category=category)
        q = (request.GET.get("q") or "").strip()
        if q:
            qs = qs.filter(Q(name__icontains=q) | Q(hsn__icontains=q))

        total = qs.count()
        rows = qs[(page - 1) * page_size : page * page_size]
        return Response({"results": [serialize_material(m) for m in rows], "count": total}, status=200)


class MaterialDetailView(APIView):
    """
    GET /api/v1/materials/<id>
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get(self, request, pk):
        org = resolve_request_organization(request)
        material = get_object_or_404(
            MaterialMaster.objects.prefetch_related("site_allocations"), id=pk, organization=org
        )
        return Response(serialize_material(material), status=200)


class MaterialStockView(APIView):
    """
    PATCH /api/v1/materials/<id>/stock  { remaining, consumed }
    Stores a stock snapshot as-is (values clamped at 0). Opening balances are untouched.
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def patch(self, request, pk):
        org = resolve_request_organization(request)
        material = get_object_or_404(MaterialMaster, id=pk, organization=org)
        payload = request.data or {}
        try:
            snapshot = StockSnapshot(
                remaining=to_decimal(payload.get("remaining"), "remaining"),
                consumed=to_decimal(payload.get("consumed"), "consumed"),
            )
        except ValidationError as exc:
            return Response({"error": "; ".join(exc.messages)}, status=400)

        result = apply_stock_snapshot(org, material.id, snapshot)
        log_stock_sync(org, material.id, snapshot.clamped(), result, user=request.user, metadata={"source": "manual"})
        if result is SnapshotResult.STALE:
            return Response({"error": "Stock changed concurrently, reload and retry"}, status=status.HTTP_409_CONFLICT)
        material.refresh_from_db()
        return Response({"result": result.value, "material": serialize_material(material)}, status=200)


class MaterialSyncView(APIView):
    """
    POST /api/v1/materials/<id>/sync
    Recomputes remaining/consumed from every purchase of the material.
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def post(self, request, pk):
        org = resolve_request_organization(request)
        material = get_object_or_404(MaterialMaster, id=pk, organization=org)
        synced = sync_material_master(org, material.id, user=request.user)
        rollup = collect_stock_rollup(org, material.id)
        material.refresh_from_db()
        return Response({
            "synced": synced,
            "rollup": {"remaining": _num(rollup.remaining), "consumed": _num(rollup.consumed)},
            "material": serialize_material(material),
        }, status=200 if synced else status.HTTP_503_SERVICE_UNAVAILABLE)


class MaterialOpeningBalanceView(APIView):
    """
    GET /api/v1/materials/<id>/opening-balance?site_id=<id|unallocated>
    Advisory figure shown while entering a receipt.
    """
    permission_classes = [IsAuthenticated, CanMutateMaterials]

    def get(self, request, pk):
        org = resolve_request_organization(request)
        material = get_object_or_404(MaterialMaster, id=pk, organization=org)
        site_id = (request.GET.get("site_id") or UNALLOCATED_SITE_ID).strip()
        return Response({
            "material_id": material.id,
            "site_id": site_id,
            "opening_balance": _num(opening_balance_for(material, site_id)),
        }, status=200)
