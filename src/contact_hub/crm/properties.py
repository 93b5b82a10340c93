"""Translation from contact/deal payloads to HubSpot v3 property objects.

The client first builds an ordered list of (property, value) pairs and then
flattens it into the ``{"properties": {name: value}}`` object the v3 create
and update endpoints expect. Later pairs win, so custom fields may override
the defaults below.
"""

from __future__ import annotations

from src.contact_hub.crm.schemas import ContactPayload, DealPayload

DEFAULT_LIFECYCLE_STAGE = "subscriber"
DEFAULT_LEAD_STATUS = "NEW"
DEFAULT_DEAL_STAGE = "appointmentscheduled"

PropertyPairs = list[tuple[str, str]]


def build_contact_properties(contact: ContactPayload) -> PropertyPairs:
    """Build the attribute set for a contact upsert."""
    pairs: PropertyPairs = [
        ("email", contact.email),
        ("firstname", contact.first_name or ""),
        ("lastname", contact.last_name or ""),
        ("company", contact.company or ""),
        ("lifecyclestage", contact.lifecycle_stage or DEFAULT_LIFECYCLE_STAGE),
        ("hs_lead_status", DEFAULT_LEAD_STATUS),
    ]
    pairs.extend((key, value) for key, value in contact.custom_fields.items())
    return pairs


def build_deal_properties(deal: DealPayload) -> PropertyPairs:
    """Build the attribute set for a new deal."""
    amount = deal.amount if deal.amount is not None else 0
    pairs: PropertyPairs = [
        ("dealname", deal.deal_name),
        ("dealstage", deal.deal_stage or DEFAULT_DEAL_STAGE),
        ("amount", _format_amount(amount)),
    ]
    pairs.extend((key, value) for key, value in deal.properties.items())
    return pairs


def to_flat_properties(pairs: PropertyPairs) -> dict[str, str]:
    """Encode attribute pairs as one key per property name."""
    return {name: value for name, value in pairs}


def split_full_name(name: str) -> tuple[str, str]:
    """Split a free-form name into (first, last) on whitespace.

    "Jane Roe" -> ("Jane", "Roe"); "Ana de la Cruz" -> ("Ana", "de la Cruz");
    a single word leaves the last name empty.
    """
    parts = name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return str(amount)
