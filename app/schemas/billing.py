"""
Billing provider event schemas and payload helpers
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class BillingEventData(BaseModel):
    """The `data` envelope of a provider event"""
    model_config = ConfigDict(extra="allow")

    object: Dict[str, Any] = Field(default_factory=dict)


class BillingEvent(BaseModel):
    """An already-verified, parsed provider webhook event"""
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    created: Optional[int] = None
    data: BillingEventData = Field(default_factory=BillingEventData)

    @property
    def object(self) -> Dict[str, Any]:
        return self.data.object

    @property
    def is_subscription_event(self) -> bool:
        return self.type.startswith("customer.subscription.") or self.type.startswith("invoice.")


class WebhookResponse(BaseModel):
    received: bool = True
    event_id: str
    outcome: str


def object_id(value: Any) -> Optional[str]:
    """Expandable provider fields are either an id string or an object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return None


def metadata_of(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


def invoice_subscription_details(invoice: Dict[str, Any]) -> Dict[str, Any]:
    """
    Subscription details of an invoice. Newer API versions nest them under
    `parent.subscription_details`.
    """
    parent = invoice.get("parent") or {}
    return parent.get("subscription_details") or invoice.get("subscription_details") or {}


def invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    """Subscription an invoice belongs to, or None for one-off invoices."""
    subscription = object_id(invoice.get("subscription"))
    if subscription:
        return subscription
    return object_id(invoice_subscription_details(invoice).get("subscription"))


def subscription_period(subscription: Dict[str, Any]) -> tuple:
    """
    (current_period_start, current_period_end) as unix timestamps. Newer API
    versions only carry the period on subscription items.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")
    return start, end


def subscription_unit_amount(subscription: Dict[str, Any]) -> int:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return 0
    price = items[0].get("price") or {}
    return int(price.get("unit_amount") or 0)
