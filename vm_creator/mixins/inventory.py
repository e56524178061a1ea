"""
Inventory resolution mixin

Resolves datacenter, cluster, resource pool, datastore, network, VM and
folder names into InventoryRefs. The datacenter lookup establishes the
search scope; every other lookup is confined to that datacenter.

Bare names are matched through a container view rooted at the relevant
datacenter folder, which touches every object of that type and can be slow
on large inventories. Full inventory paths go straight to
SearchIndex.FindByInventoryPath.
"""

import time
from typing import Any, List, Optional

from pyVmomi import vim

from vm_creator.errors import (
    AmbiguousObjectError,
    ObjectNotFoundError,
    ScopeConflictError,
    ScopeNotEstablishedError,
)
from vm_creator.mixins.base import VCenterCallMixin
from vm_creator.models import InventoryPath, InventoryRef, ObjectKind, SearchScope
from vm_creator.utils import format_elapsed


# kind -> (datacenter folder property searched, vim type filter)
_SEARCH_ROOTS = {
    ObjectKind.CLUSTER: ("hostFolder", vim.ClusterComputeResource),
    ObjectKind.RESOURCE_POOL: ("hostFolder", vim.ResourcePool),
    ObjectKind.DATASTORE: ("datastoreFolder", vim.Datastore),
    ObjectKind.NETWORK: ("networkFolder", vim.Network),
    ObjectKind.VIRTUAL_MACHINE: ("vmFolder", vim.VirtualMachine),
    ObjectKind.FOLDER: ("vmFolder", vim.Folder),
}

# datacenter folder property -> its segment in an inventory path
_FOLDER_SEGMENTS = {
    "hostFolder": "host",
    "datastoreFolder": "datastore",
    "networkFolder": "network",
    "vmFolder": "vm",
}


class InventoryMixin(VCenterCallMixin):
    """Mixin providing scoped inventory lookups"""

    search_scope: Optional[SearchScope] = None

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def resolve_datacenter(self, name: str) -> SearchScope:
        """Find the datacenter and bind the search scope to it."""
        path = InventoryPath(name)
        self.log(f"Finding Datacenter for context: {name}...")
        start = time.monotonic()

        if path.is_path:
            obj = self._find_by_path(ObjectKind.DATACENTER, path, vim.Datacenter)
            matches = [obj] if obj is not None else []
        else:
            matches = self._find_in_container(ObjectKind.DATACENTER, self.content.rootFolder,
                                              vim.Datacenter, name)

        obj = self._select(ObjectKind.DATACENTER, name, matches, scope_name=None)
        ref = InventoryRef.from_managed_object(ObjectKind.DATACENTER, obj, name=path.name)

        if self.search_scope is not None and self.search_scope.datacenter != ref:
            raise ScopeConflictError(self.search_scope.name, ref.name)

        self.search_scope = SearchScope(datacenter=ref, path=path.relative)
        self.log(f"✓ Found Datacenter: {ref} (took {format_elapsed(self._elapsed(start))})")
        return self.search_scope

    def _require_scope(self, kind: ObjectKind) -> SearchScope:
        if self.search_scope is None:
            raise ScopeNotEstablishedError(kind.label)
        return self.search_scope

    # ------------------------------------------------------------------
    # Generic lookup
    # ------------------------------------------------------------------

    def resolve(self, kind: ObjectKind, name: str) -> InventoryRef:
        """
        Resolve a bare name or inventory path to exactly one object of ``kind``.

        Raises:
            ScopeNotEstablishedError: resolve_datacenter has not run
            ObjectNotFoundError: nothing matched
            AmbiguousObjectError: several matches and strict resolution is on
        """
        scope = self._require_scope(kind)
        root_attr, vim_type = _SEARCH_ROOTS[kind]
        path = InventoryPath(name)

        self.log(f"Finding {kind.label}: {name}...")
        start = time.monotonic()

        if path.is_path:
            if path.is_absolute:
                if not path.within(scope.path or scope.name):
                    raise ObjectNotFoundError(kind.label, name, scope.name)
                lookup = path
            else:
                lookup = InventoryPath.under(scope.path or scope.name, _FOLDER_SEGMENTS[root_attr], path.relative)
            obj = self._find_by_path(kind, lookup, vim_type)
            matches = [obj] if obj is not None else []
        else:
            root = self._remote(f"read datacenter {root_attr}",
                                lambda: getattr(scope.datacenter.obj, root_attr))
            matches = self._find_in_container(kind, root, vim_type, name)

        obj = self._select(kind, name, matches, scope_name=scope.name)
        ref = InventoryRef.from_managed_object(kind, obj, name=path.name)
        self.log(f"✓ Found {kind.label}: {ref} (took {format_elapsed(self._elapsed(start))})")
        return ref

    def _find_by_path(self, kind: ObjectKind, path: InventoryPath, vim_type) -> Optional[Any]:
        obj = self._remote(f"find {kind.label} by path",
                           self.content.searchIndex.FindByInventoryPath, path.relative)
        if obj is not None and not isinstance(obj, vim_type):
            self.log(f"Inventory path '{path}' points at a {type(obj).__name__}, not a {kind.label}", "WARN")
            return None
        return obj

    def _find_in_container(self, kind: ObjectKind, root: Any, vim_type, name: str) -> List[Any]:
        def search():
            view = self.content.viewManager.CreateContainerView(root, [vim_type], True)
            try:
                return [obj for obj in view.view if obj.name == name]
            finally:
                view.Destroy()

        return self._remote(f"search {kind.label} '{name}'", search)

    def _select(self, kind: ObjectKind, name: str, matches: List[Any], scope_name: Optional[str]) -> Any:
        if not matches:
            raise ObjectNotFoundError(kind.label, name, scope_name)

        if len(matches) > 1:
            candidates = [str(obj._moId) for obj in matches]
            if self.settings.strict_name_resolution:
                raise AmbiguousObjectError(kind.label, name, candidates)
            # First match in the order vCenter returned them
            self.log(f"{kind.label} name '{name}' matched {len(matches)} objects "
                     f"({', '.join(candidates)}); using {candidates[0]}. "
                     f"Pass a full inventory path to disambiguate.", "WARN")

        return matches[0]

    # ------------------------------------------------------------------
    # Typed lookups, in workflow order
    # ------------------------------------------------------------------

    def resolve_cluster(self, name: str) -> InventoryRef:
        return self.resolve(ObjectKind.CLUSTER, name)

    def resolve_resource_pool(self, name: Optional[str], cluster: InventoryRef) -> InventoryRef:
        """Resolve a named pool, or fall back to the cluster's root pool when no name is given."""
        if name:
            return self.resolve(ObjectKind.RESOURCE_POOL, name)

        self._require_scope(ObjectKind.RESOURCE_POOL)
        self.log(f"Resource Pool name not specified, using root resource pool for Cluster '{cluster.name}'...")
        start = time.monotonic()
        pool = self._remote("read cluster root resource pool", lambda: cluster.obj.resourcePool)
        if pool is None:
            raise ObjectNotFoundError(ObjectKind.RESOURCE_POOL.label, f"{cluster.name}/Resources",
                                      self.search_scope.name)
        ref = InventoryRef.from_managed_object(ObjectKind.RESOURCE_POOL, pool, name="Resources")
        self.log(f"✓ Found root Resource Pool for Cluster '{cluster.name}' (MOID: {ref.id}) "
                 f"(took {format_elapsed(self._elapsed(start))})")
        return ref

    def resolve_datastore(self, name: str) -> InventoryRef:
        return self.resolve(ObjectKind.DATASTORE, name)

    def resolve_network(self, name: str) -> InventoryRef:
        return self.resolve(ObjectKind.NETWORK, name)

    def resolve_vm(self, name_or_path: str) -> InventoryRef:
        """Find a VM or template; a full inventory path skips the broad name search."""
        return self.resolve(ObjectKind.VIRTUAL_MACHINE, name_or_path)

    def resolve_template(self, name_or_path: str) -> InventoryRef:
        if not InventoryPath(name_or_path).is_path:
            self.log(f"Template '{name_or_path}' given as a bare name; searching the whole VM folder "
                     f"(pass <folder>/<template> or /<datacenter>/vm/<folder>/<template> for a direct lookup)", "DEBUG")
        return self.resolve_vm(name_or_path)

    def resolve_folder(self, folder_name: str) -> InventoryRef:
        """Folder names collide across parents, so the folder is always looked up by full path."""
        scope = self._require_scope(ObjectKind.FOLDER)
        return self.resolve(ObjectKind.FOLDER, str(InventoryPath.folder_under(scope.path or scope.name, folder_name)))
