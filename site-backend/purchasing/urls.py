# purchasing/urls.py
from django.urls import path
from .api import PurchaseListCreateView, PurchaseDetailView

app_name = "purchasing"

urlpatterns = [
    path("purchases", PurchaseListCreateView.as_view(), name="purchase-list-create"),
    path("purchases/<int:pk>", PurchaseDetailView.as_view(), name="purchase-detail"),
]
