from roomstay.modules.payments.gateway import MidtransClient, SnapTransaction
from roomstay.modules.payments.service import (
    PaymentService,
    ReconcileResult,
    map_gateway_status,
    reconcile,
)
from roomstay.modules.payments.signature import compute_signature, verify_signature

__all__ = [
    "MidtransClient",
    "PaymentService",
    "ReconcileResult",
    "SnapTransaction",
    "compute_signature",
    "map_gateway_status",
    "reconcile",
    "verify_signature",
]
