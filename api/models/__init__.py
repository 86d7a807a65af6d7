from .base import Base
from .partner import Partner, PartnerStatus
from .payout import Payout, PayoutStatus
