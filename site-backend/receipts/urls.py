# receipts/urls.py
from django.urls import path
from .api import ReceiptListCreateView, ReceiptDetailView, ReceiptLinkView, ReceiptUnlinkView

app_name = "receipts"

urlpatterns = [
    path("material-receipts", ReceiptListCreateView.as_view(), name="receipt-list-create"),
    path("material-receipts/<int:pk>", ReceiptDetailView.as_view(), name="receipt-detail"),
    path("material-receipts/<int:pk>/link", ReceiptLinkView.as_view(), name="receipt-link"),
    path("material-receipts/<int:pk>/unlink", ReceiptUnlinkView.as_view(), name="receipt-unlink"),
]
