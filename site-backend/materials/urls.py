# materials/urls.py
from django.urls import path
from .api import (
    MaterialListView, MaterialDetailView, MaterialStockView, MaterialSyncView, MaterialOpeningBalanceView,
)

app_name = "materials"

urlpatterns = [
    path("materials", MaterialListView.as_view(), name="material-list"),
    path("materials/<int:pk>", MaterialDetailView.as_view(), name="material-detail"),
    path("materials/<int:pk>/stock", MaterialStockView.as_view(), name="material-stock"),
    path("materials/<int:pk>/sync", MaterialSyncView.as_view(), name="material-sync"),
    path("materials/<int:pk>/opening-balance", MaterialOpeningBalanceView.as_view(), name="material-opening-balance"),
]
