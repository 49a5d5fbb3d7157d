"""
Service Field Reconciler

A service carries several names for the same concept, left over from
earlier data shapes:

- ownership:      profileIds / ownerIdentityIds / identityId
- website:        websiteUrl / loginUrl
- billing email:  billingEmailId / emailId

Every write to a service passes through `reconcile()`, which turns an
incoming partial payload into one where each group is mutually
consistent. The rules run in a fixed order (ownership, URL, billing
email, login email).

DESIGN DECISION: Reconciliation is a pure function with no failure mode.
It never touches storage; the caller supplies the previous version of
the service and an id -> address map for email accounts.

DESIGN DECISION: loginEmail is tri-state.
- key absent           -> not provided
- null or ""           -> explicitly cleared, stored as ""
- any other string     -> a value
Auto-derivation from the billing email only happens when the key is
absent AND the service has never had a loginEmail.
"""

from collections.abc import Mapping
from typing import Any, Optional

from identity_hub.models.identity import Service, ServicePatch

OWNERSHIP_FIELDS = ("profile_ids", "owner_identity_ids", "identity_id")
REQUIRED_FIELDS = frozenset({"name", "category", "billing_cycle", "status"})


def reconcile(
    incoming: ServicePatch,
    existing: Optional[Service] = None,
    email_addresses: Optional[Mapping[str, str]] = None,
) -> ServicePatch:
    """
    Normalize a service mutation so alias fields agree.

    Args:
        incoming: The partial payload as submitted. Fields not in
                  `model_fields_set` are treated as not supplied.
        existing: The stored service being updated, or None on create.
        email_addresses: Email account id -> address, used to derive
                         loginEmail from the billing email.

    Returns:
        A new ServicePatch. Fields the caller did not supply and no rule
        touched remain unsupplied, so applying it never erases data.
    """
    result: dict[str, Any] = incoming.supplied_updates()

    owners = _resolve_owners(incoming, existing)
    if owners is not None:
        result["profile_ids"] = owners
        result["owner_identity_ids"] = list(owners)
        result["identity_id"] = owners[0] if owners else None

    url_supplied, url = _resolve_url(incoming, existing)
    if url_supplied:
        result["website_url"] = url
        result["login_url"] = url

    billing_supplied, billing_email_id = _resolve_billing_email(incoming)
    if billing_supplied:
        result["billing_email_id"] = billing_email_id
        result["email_id"] = billing_email_id

    login_supplied, login_email = _resolve_login_email(
        incoming,
        existing,
        billing_email_id if billing_supplied else (
            existing.billing_email_id if existing else None
        ),
        email_addresses or {},
    )
    if login_supplied:
        result["login_email"] = login_email
    else:
        result.pop("login_email", None)

    return ServicePatch.model_validate(result)


def apply_patch(existing: Optional[Service], patch: ServicePatch) -> Service:
    """
    Merge a reconciled patch onto a service (or onto a blank one on create).

    Only supplied fields overwrite; everything else is kept.
    """
    base = existing.model_dump() if existing is not None else {}
    for name, value in patch.supplied_updates().items():
        # A null on a required field means "leave as is"
        if value is None and name in REQUIRED_FIELDS:
            continue
        base[name] = value
    # Owner lists are never null at rest
    for list_field in ("profile_ids", "owner_identity_ids"):
        if base.get(list_field) is None:
            base[list_field] = []
    return Service.model_validate(base)


# =============================================================================
# RULES
# =============================================================================

def _resolve_owners(
    incoming: ServicePatch,
    existing: Optional[Service],
) -> Optional[list[str]]:
    """
    Rule 1: ownership.

    Returns the canonical owner list, or None when there is nothing to
    write (create with no owners supplied).
    """
    if incoming.profile_ids:
        return _dedupe(incoming.profile_ids)
    if incoming.owner_identity_ids:
        return _dedupe(incoming.owner_identity_ids)
    if incoming.identity_id:
        return [incoming.identity_id]

    # Supplied, but every supplied value is empty: explicit clear
    if any(incoming.supplied(f) for f in OWNERSHIP_FIELDS):
        return []

    # Partial update must not erase ownership
    if existing is not None:
        return existing.owner_ids
    return None


def _resolve_url(
    incoming: ServicePatch,
    existing: Optional[Service],
) -> tuple[bool, Optional[str]]:
    """Rule 2: websiteUrl wins over loginUrl, then the previous value."""
    if incoming.supplied("website_url"):
        return True, incoming.website_url
    if incoming.supplied("login_url"):
        return True, incoming.login_url
    if existing is not None and existing.url is not None:
        return True, existing.url
    return False, None


def _resolve_billing_email(incoming: ServicePatch) -> tuple[bool, Optional[str]]:
    """Rule 3: billingEmailId and emailId mirror; no forward fill."""
    if incoming.supplied("billing_email_id"):
        return True, incoming.billing_email_id
    if incoming.supplied("email_id"):
        return True, incoming.email_id
    return False, None


def _resolve_login_email(
    incoming: ServicePatch,
    existing: Optional[Service],
    billing_email_id: Optional[str],
    email_addresses: Mapping[str, str],
) -> tuple[bool, Optional[str]]:
    """Rule 4: tri-state loginEmail with one-time derivation."""
    if incoming.supplied("login_email"):
        value = incoming.login_email
        return True, value if value else ""

    if existing is not None and existing.login_email is not None:
        return False, None

    if billing_email_id and billing_email_id in email_addresses:
        return True, email_addresses[billing_email_id]

    return False, None


def _dedupe(ids: list[str]) -> list[str]:
    """Drop blanks and repeats, keeping the first occurrence order."""
    return list(dict.fromkeys(i for i in ids if i))
