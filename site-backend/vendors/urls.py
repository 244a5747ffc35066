# vendors/urls.py
from django.urls import path
from .api import VendorListCreateView, VendorDetailView

app_name = "vendors"

urlpatterns = [
    path("vendors", VendorListCreateView.as_view(), name="vendor-list-create"),
    path("vendors/<int:pk>", VendorDetailView.as_view(), name="vendor-detail"),
]
