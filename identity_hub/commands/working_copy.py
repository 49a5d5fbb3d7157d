"""
Batch Working Copy

Every command in a batch reads identities and module data through one
working copy, and every successful command writes to the backing store
first and then into the copy. An identity created by the first command
of a batch is therefore visible to every later command, and a command
that fails halfway leaves both the store and the copy untouched.

Reads hand out deep copies; a handler mutates its copy and only
`commit_*` makes the change visible. Renames and deletes update the
batch name index as well, so a released name can be claimed again.
"""

from typing import Optional

from identity_hub.models.identity import Identity, IdentityModules, normalize_name
from identity_hub.services.storage.repositories import (
    IdentityRepository,
    ModuleDataRepository,
)


class BatchWorkingCopy:
    """Batch-scoped view of identities and the module data commands touch."""

    def __init__(self, identities: IdentityRepository, modules: ModuleDataRepository):
        self._identity_repo = identities
        self._module_repo = modules
        self._identities: dict[str, Identity] = {}
        self._name_index: dict[str, str] = {}
        self._modules: dict[str, IdentityModules] = {}

    def _remember(self, identity: Identity) -> None:
        previous = self._identities.get(identity.id)
        if previous is not None and previous.name_key != identity.name_key:
            self._drop_name(previous)
        self._identities[identity.id] = identity
        self._name_index.setdefault(identity.name_key, identity.id)

    def _drop_name(self, identity: Identity) -> None:
        if self._name_index.get(identity.name_key) == identity.id:
            del self._name_index[identity.name_key]

    async def get_identity(self, identity_id: str) -> Optional[Identity]:
        """Exact id lookup."""
        if identity_id not in self._identities:
            identity = await self._identity_repo.get(identity_id)
            if identity is None:
                return None
            self._remember(identity)
        return self._identities[identity_id].model_copy(deep=True)

    async def find_by_name(self, name: str) -> Optional[Identity]:
        """Case-insensitive name lookup, including identities created this batch."""
        key = normalize_name(name)
        identity_id = self._name_index.get(key)
        if identity_id is None:
            identity_id = await self._identity_repo.find_id_by_name(name)
            if identity_id is None:
                return None
        return await self.get_identity(identity_id)

    async def modules(self, identity_id: str) -> IdentityModules:
        """A private copy of an identity's module records."""
        if identity_id not in self._modules:
            self._modules[identity_id] = await self._module_repo.get(identity_id)
        return self._modules[identity_id].model_copy(deep=True)

    async def commit_identity(self, identity: Identity) -> None:
        await self._identity_repo.save(identity)
        self._remember(identity.model_copy(deep=True))

    async def commit_modules(self, modules: IdentityModules) -> None:
        await self._module_repo.save(modules)
        self._modules[modules.identity_id] = modules.model_copy(deep=True)

    async def delete_identity(self, identity: Identity) -> None:
        """Remove an identity and its module records from the store and the copy."""
        await self._module_repo.delete(identity.id)
        await self._identity_repo.delete(identity.id)
        self._drop_name(self._identities.pop(identity.id, identity))
        self._modules.pop(identity.id, None)
