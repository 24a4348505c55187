from charityhub.services.intake import DonationIntakeService, DonationReceipt, PaymentDeclined
from charityhub.services.payments import (
    ChargeResult,
    DemoProcessor,
    PaymentProcessor,
    StripeProcessor,
    build_processor,
)
from charityhub.services.storage import (
    DuplicateTransactionId,
    FallbackStorage,
    MemoryStorage,
    SqlStorage,
    StorageBackend,
    StorageError,
)

__all__ = [
    "ChargeResult",
    "DemoProcessor",
    "DonationIntakeService",
    "DonationReceipt",
    "DuplicateTransactionId",
    "FallbackStorage",
    "MemoryStorage",
    "PaymentDeclined",
    "PaymentProcessor",
    "SqlStorage",
    "StorageBackend",
    "StorageError",
    "StripeProcessor",
    "build_processor",
]
