# common/exceptions.py
"""
Domain exceptions shared by the receipt ledger and the reconciliation engine.
Validation failures use django.core.exceptions.ValidationError.
"""


class ReconciliationError(Exception):
    """Base exception for receipt/purchase reconciliation"""
    pass


class ConflictError(ReconciliationError):
    """
    Raised when a receipt's link state forbids the requested operation:
    deleting a linked receipt, or linking a receipt already owned by
    another purchase.
    """

    def __init__(self, message, *, receipt_id=None, linked_purchase_id=None):
        super().__init__(message)
        self.message = message
        self.receipt_id = receipt_id
        self.linked_purchase_id = linked_purchase_id

    def as_dict(self):
        return {
            "error": self.message,
            "receipt_id": self.receipt_id,
            "linked_purchase_id": self.linked_purchase_id,
        }
