"""
Service Schema Adapter

Service documents record the `schemaVersion` they were written with.
Version 1 documents (no version field) predate the canonical fields and
may carry only `identityId`, `ownerIdentityIds`, `loginUrl`, `emailId`
or an `isArchived` flag. They are upgraded on load.

DESIGN DECISION: The upgrade runs the same reconciler as every write,
so there is a single definition of how alias fields map onto each other.
"""

from identity_hub.models.identity import Service, ServicePatch, ServiceStatus
from identity_hub.reconciliation import apply_patch, reconcile

CURRENT_SCHEMA_VERSION = 2

# camelCase document keys the reconciler cares about
_ALIAS_KEYS = (
    "profileIds",
    "ownerIdentityIds",
    "identityId",
    "websiteUrl",
    "loginUrl",
    "billingEmailId",
    "emailId",
    "loginEmail",
)


def upgrade_service_document(document: dict) -> Service:
    """
    Load a stored service document, upgrading it if it is out of date.

    Current documents are validated as-is.
    """
    version = document.get("schemaVersion", 1)
    if version >= CURRENT_SCHEMA_VERSION:
        return Service.model_validate(document)

    document = dict(document)
    if document.pop("isArchived", False):
        document["status"] = ServiceStatus.ARCHIVED.value
    document["schemaVersion"] = CURRENT_SCHEMA_VERSION

    legacy = Service.model_validate(document)
    patch = ServicePatch.model_validate(
        {key: document[key] for key in _ALIAS_KEYS if document.get(key) is not None}
    )
    return apply_patch(legacy, reconcile(patch, legacy))
