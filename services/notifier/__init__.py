from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

import aiohttp

from api.crud.payout.schema import PartnerRecord, PayoutRecord
from config import ENV
from services.errors import NotifierFailure


class PayoutNotifierInterface(ABC):
    @abstractmethod
    async def notify_payout_approval(self, partner: PartnerRecord, payout: PayoutRecord, new_balance: Decimal) -> bool:
        pass

    @abstractmethod
    async def notify_payout_rejection(self, partner: PartnerRecord, payout: PayoutRecord, reason: str) -> bool:
        pass

    @abstractmethod
    async def notify_partner_approval(self, partner: Any) -> bool:
        pass

    @abstractmethod
    async def notify_partner_rejection(self, partner: Any, reason: Optional[str]) -> bool:
        pass


class EmailNotifier(PayoutNotifierInterface):
    """
    Sends templated emails through the mail relay.
    If the relay URL is not configured the message is skipped with a warning.
    """
    def __init__(self, env: ENV | None = None):
        self.env = env or ENV()
        self.url = self.env.EMAIL_SERVICE_URL

    async def notify_payout_approval(self, partner: PartnerRecord, payout: PayoutRecord, new_balance: Decimal) -> bool:
        return await self.send_email(
            to=partner.email,
            subject="Payout Approved - Funds Processed",
            template="payout-approval",
            data={
                "partner_name": partner.first_name,
                "business_name": partner.business_name,
                "amount": f"{payout.amount:.2f}",
                "net_amount": f"{payout.net_amount:.2f}" if payout.net_amount is not None else None,
                "processing_fee": f"{payout.processing_fee:.2f}" if payout.processing_fee is not None else None,
                "payout_id": str(payout.id),
                "approved_at": payout.approved_at.date().isoformat() if payout.approved_at else None,
                "new_balance": f"{new_balance:.2f}",
            },
        )

    async def notify_payout_rejection(self, partner: PartnerRecord, payout: PayoutRecord, reason: str) -> bool:
        return await self.send_email(
            to=partner.email,
            subject="Payout Request Rejected",
            template="payout-rejection",
            data={
                "partner_name": partner.first_name,
                "business_name": partner.business_name,
                "amount": f"{payout.amount:.2f}",
                "payout_id": str(payout.id),
                "rejection_reason": reason or "No reason provided",
                "rejected_at": payout.rejected_at.date().isoformat() if payout.rejected_at else None,
            },
        )

    async def notify_partner_approval(self, partner: Any) -> bool:
        return await self.send_email(
            to=partner.email,
            subject="Partner Application Approved - Elevatio",
            template="partner-approval",
            data={"business_name": partner.business_name, "contact_person": partner.contact_person},
        )

    async def notify_partner_rejection(self, partner: Any, reason: Optional[str]) -> bool:
        return await self.send_email(
            to=partner.email,
            subject="Partner Application Update - Elevatio",
            template="partner-rejection",
            data={
                "business_name": partner.business_name,
                "contact_person": partner.contact_person,
                "reason": reason,
            },
        )

    async def send_email(self, *, to: str, subject: str, template: str, data: dict[str, Any]) -> bool:
        if not self.url:
            logging.warning(f"Email service not configured, skipping '{template}' email to {to}")
            return False
        headers = {"Content-Type": "application/json"}
        if self.env.EMAIL_SERVICE_TOKEN:
            headers["Authorization"] = f"Bearer {self.env.EMAIL_SERVICE_TOKEN}"
        payload = {
            "from": self.env.EMAIL_FROM,
            "to": to,
            "subject": subject,
            "template": template,
            "data": data,
        }
        timeout = aiohttp.ClientTimeout(total=self.env.EMAIL_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as s:
            async with s.post(self.url, json=payload, headers=headers) as r:
                body = await r.text()
                if r.status >= 400:
                    raise NotifierFailure(f"Mail relay answered {r.status} for '{template}': {body[:200]}")
        logging.info(f"Sent '{template}' email to {to}")
        return True
