from .ledger import PayoutLedger, DEFAULT_REJECTION_REASON
from .schemas import Money, PayoutApproval, PayoutRejection
