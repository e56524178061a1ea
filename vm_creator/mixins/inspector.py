"""Read-only inspection of an existing VM's network adapters"""

import json
from dataclasses import asdict
from typing import Any, List, Optional

from pyVmomi import vmodl

from vm_creator.mixins.base import VCenterCallMixin
from vm_creator.mixins.network_backing import data_object_properties
from vm_creator.models import (
    DistributedPortBacking,
    NetworkAdapter,
    NetworkNameBacking,
    UnrecognizedBacking,
)


def _to_plain(value: Any) -> Any:
    # Managed object references are left as they are and stop json.dumps
    if isinstance(value, vmodl.DynamicData):
        return {name: _to_plain(item) for name, item in data_object_properties(value).items()}
    if isinstance(value, list):
        return [_to_plain(item) for item in value]
    return value


def render_backing(backing, raw: Optional[Any] = None) -> List[str]:
    """
    Render a backing as log lines.

    Dumps the pyVmomi backing (``raw``) as JSON when given, the backing
    model otherwise. When the backing holds values JSON cannot represent,
    such as managed object references, falls back to the known fields of
    the two modelled backing kinds. Unrecognized backings get a notice and
    their property values instead of a dump.
    """
    if backing is None:
        return ["    BackingInfo: nil"]

    if isinstance(backing, UnrecognizedBacking):
        lines = [f"    BackingInfo Type: {backing.type_name}",
                 "    BackingInfo: unrecognized backing type, not rendered"]
        lines.extend(f"      {name}: {value}" for name, value in backing.properties)
        return lines

    lines = [f"    BackingInfo Type: {type(backing).__name__}"]
    try:
        plain = _to_plain(raw) if raw is not None else asdict(backing)
        dumped = json.dumps(plain, indent=2, sort_keys=True)
    except (TypeError, ValueError) as e:
        lines.append(f"    Could not marshal backing info to JSON: {e}")
    else:
        lines.append("    BackingInfo (JSON):")
        lines.extend(f"    {line}" for line in dumped.splitlines())
        return lines

    if isinstance(backing, NetworkNameBacking):
        lines.append(f"      DeviceName: {backing.device_name}")
        lines.append(f"      Network MOR: {backing.network_id or 'nil'}")
        lines.append(f"      UseAutoDetect: {backing.auto_detect}")
    elif isinstance(backing, DistributedPortBacking):
        lines.append(f"      Port.SwitchUuid: {backing.switch_uuid}")
        lines.append(f"      Port.PortgroupKey: {backing.portgroup_key}")
        lines.append(f"      Port.PortKey: {backing.port_key}")
        lines.append(f"      Port.ConnectionCookie: {backing.connection_cookie}")
    else:
        lines.append(f"    BackingInfo: {backing!r}")
    return lines


def render_adapter(adapter: NetworkAdapter) -> List[str]:
    lines = [
        f"  NIC Label: {adapter.label}, Device Type: {adapter.device_type or adapter.variant.value} "
        f"({adapter.variant.name})",
        f"    Key: {adapter.key}",
        f"    AddressType: {adapter.address_type}",
    ]
    if adapter.mac_address:
        lines.append(f"    MAC Address: {adapter.mac_address}")
    lines.append(f"    Connectable: {adapter.connectable}")
    lines.extend(render_backing(adapter.backing, adapter.raw_backing))
    lines.append("    ----")
    return lines


class InspectorMixin(VCenterCallMixin):
    """
    Mixin providing the network configuration dump of an existing VM.

    Relies on resolve_vm (InventoryMixin) and read_network_adapters
    (NetworkBackingMixin) from the composing class.
    """

    def inspect_vm_network(self, vm_name: str) -> List[str]:
        """
        Describe every network adapter of ``vm_name``.

        The datacenter scope must already be established. A missing VM is
        fatal (ObjectNotFoundError); nothing is modified.
        """
        self.log(f"Attempting to inspect network configuration for VM: {vm_name}")
        vm = self.resolve_vm(vm_name)
        adapters = self.read_network_adapters(vm)

        lines = [f"Hardware devices for VM '{vm.name}':"]
        for adapter in adapters:
            lines.extend(render_adapter(adapter))
        if not adapters:
            lines.append(f"  No VirtualEthernetCard devices found on VM '{vm.name}'.")
        return lines
