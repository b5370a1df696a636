from app.receipts.models.saved_receipt import SavedReceiptModel

__all__ = ["SavedReceiptModel"]
