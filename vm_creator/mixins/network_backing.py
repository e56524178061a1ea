"""
Network backing translation mixin

Turns a resolved distributed port group into the switch UUID / port group
key pair vCenter expects in a NIC backing, and rewrites every network
adapter of the template onto it as an in-place edit.

vCenter only accepts an edit when the device in the spec is the same
concrete class as the device being edited, so each adapter is rebuilt as
its own variant (VMXNET3 stays VMXNET3, E1000e stays E1000e, ...).
Adapters of any other class fall back to the VirtualEthernetCard supertype
and are flagged as degraded.
"""

import time
from typing import Any, List, Optional, Tuple

from pyVmomi import vim

from vm_creator.errors import (
    MissingSwitchAssociationError,
    UnsupportedNetworkKindError,
    VMCreatorError,
)
from vm_creator.mixins.base import VCenterCallMixin
from vm_creator.models import (
    AdapterVariant,
    BackingDescriptor,
    ConnectableState,
    DeviceEditInstruction,
    DistributedPortBacking,
    InventoryRef,
    NetworkAdapter,
    NetworkNameBacking,
    PortGroupIdentity,
    UnrecognizedBacking,
)
from vm_creator.utils import format_elapsed


# Exact-class lookup: subclasses such as VirtualVmxnet3Vrdma must not pass for their parent
_VARIANT_BY_TYPE = {
    vim.vm.device.VirtualVmxnet3: AdapterVariant.VMXNET3,
    vim.vm.device.VirtualE1000: AdapterVariant.E1000,
    vim.vm.device.VirtualE1000e: AdapterVariant.E1000E,
    vim.vm.device.VirtualPCNet32: AdapterVariant.PCNET32,
}

_TYPE_BY_VARIANT = {
    AdapterVariant.VMXNET3: vim.vm.device.VirtualVmxnet3,
    AdapterVariant.E1000: vim.vm.device.VirtualE1000,
    AdapterVariant.E1000E: vim.vm.device.VirtualE1000e,
    AdapterVariant.PCNET32: vim.vm.device.VirtualPCNet32,
    AdapterVariant.GENERIC: vim.vm.device.VirtualEthernetCard,
}


def _type_name(obj: Any) -> str:
    # pyVmomi class names carry the vmodl namespace, e.g. vim.vm.device.VirtualVmxnet3
    return obj.__class__.__name__.rsplit(".", 1)[-1]


def data_object_properties(obj: Any) -> dict:
    """Set properties of a pyVmomi data object, in declaration order"""
    props = {}
    for prop in getattr(obj, "_GetPropertyList", lambda: [])():
        value = getattr(obj, prop.name, None)
        if value is None or (isinstance(value, list) and not value):
            continue
        props[prop.name] = value
    return props


def adapter_variant(device: Any) -> AdapterVariant:
    return _VARIANT_BY_TYPE.get(type(device), AdapterVariant.GENERIC)


def connectable_from_vim(info: Any) -> Optional[ConnectableState]:
    if info is None:
        return None
    return ConnectableState(
        start_connected=info.startConnected,
        allow_guest_control=info.allowGuestControl,
        connected=info.connected,
        status=info.status,
        migrate_connect=getattr(info, 'migrateConnect', None),
    )


def connectable_to_vim(state: Optional[ConnectableState]) -> Any:
    if state is None:
        return None
    info = vim.vm.device.VirtualDevice.ConnectInfo()
    for attr, value in (
        ('startConnected', state.start_connected),
        ('allowGuestControl', state.allow_guest_control),
        ('connected', state.connected),
        ('status', state.status),
        ('migrateConnect', state.migrate_connect),
    ):
        if value is not None:
            setattr(info, attr, value)
    return info


def backing_from_vim(backing: Any) -> Optional[BackingDescriptor]:
    """Convert a pyVmomi NIC backing into the tagged backing model."""
    if backing is None:
        return None

    if isinstance(backing, vim.vm.device.VirtualEthernetCard.NetworkBackingInfo):
        network = backing.network
        return NetworkNameBacking(
            device_name=backing.deviceName,
            network_id=str(network._moId) if network is not None else None,
            auto_detect=bool(backing.useAutoDetect),
        )

    if isinstance(backing, vim.vm.device.VirtualEthernetCard.DistributedVirtualPortBackingInfo):
        port = backing.port
        return DistributedPortBacking(
            switch_uuid=port.switchUuid,
            portgroup_key=port.portgroupKey,
            port_key=port.portKey,
            connection_cookie=port.connectionCookie,
        )

    properties = tuple((name, str(value)) for name, value in data_object_properties(backing).items())
    return UnrecognizedBacking(type_name=_type_name(backing), properties=properties)


def backing_to_vim(backing: BackingDescriptor) -> Any:
    """Render a target backing. Only distributed port backings may be applied."""
    if not isinstance(backing, DistributedPortBacking):
        raise VMCreatorError(f"{type(backing).__name__} cannot be applied to a network adapter; "
                             f"only distributed port backings are supported as targets",
                             error_code="UNSUPPORTED_BACKING")

    port = vim.dvs.PortConnection()
    port.switchUuid = backing.switch_uuid
    port.portgroupKey = backing.portgroup_key
    if backing.port_key is not None:
        port.portKey = backing.port_key
    if backing.connection_cookie is not None:
        port.connectionCookie = backing.connection_cookie

    info = vim.vm.device.VirtualEthernetCard.DistributedVirtualPortBackingInfo()
    info.port = port
    return info


def adapter_from_device(device: Any) -> NetworkAdapter:
    label = device.deviceInfo.label if device.deviceInfo is not None else ""
    return NetworkAdapter(
        key=device.key,
        variant=adapter_variant(device),
        address_type=device.addressType,
        connectable=connectable_from_vim(device.connectable),
        backing=backing_from_vim(device.backing),
        label=label or "",
        mac_address=device.macAddress or None,
        device_type=_type_name(device),
        raw_backing=device.backing,
    )


def to_device_spec(instruction: DeviceEditInstruction) -> Any:
    """
    Build the minimal edit spec for one adapter: same class and key, the
    original connectable state and address type, new backing.
    """
    adapter = instruction.adapter
    device = _TYPE_BY_VARIANT[adapter.variant]()
    device.key = adapter.key
    device.backing = backing_to_vim(adapter.backing)
    device.connectable = connectable_to_vim(adapter.connectable)
    if adapter.address_type is not None:
        device.addressType = adapter.address_type

    spec = vim.vm.device.VirtualDeviceSpec()
    spec.operation = vim.vm.device.VirtualDeviceSpec.Operation.edit
    spec.device = device
    return spec


class NetworkBackingMixin(VCenterCallMixin):
    """Mixin providing distributed port group lookup and NIC rewiring"""

    def resolve_portgroup_identity(self, network: InventoryRef) -> PortGroupIdentity:
        """
        Derive the switch UUID / port group key pair for a resolved network.

        Raises:
            UnsupportedNetworkKindError: the network is a standard port group,
                an opaque network or anything other than a DVPG
            MissingSwitchAssociationError: the DVPG config has no switch
        """
        start = time.monotonic()
        portgroup = network.obj

        if not isinstance(portgroup, vim.dvs.DistributedVirtualPortgroup):
            raise UnsupportedNetworkKindError(network.name, _type_name(portgroup))

        portgroup_key = self._remote(f"read key of DVPG '{network.name}'", lambda: portgroup.key)
        switch = self._remote(f"read switch of DVPG '{network.name}'",
                              lambda: portgroup.config.distributedVirtualSwitch)
        if switch is None:
            raise MissingSwitchAssociationError(network.name)

        switch_uuid = self._remote(f"read UUID of switch {getattr(switch, '_moId', '?')}",
                                   lambda: switch.uuid)
        identity = PortGroupIdentity(portgroup_key=portgroup_key, switch_uuid=switch_uuid)
        self.log(f"DVPG Key: {portgroup_key}, DVS UUID: {switch_uuid} for network {network.name} "
                 f"(took {format_elapsed(self._elapsed(start))})")
        return identity

    def read_network_adapters(self, vm: InventoryRef) -> List[NetworkAdapter]:
        """Return every VirtualEthernetCard on the VM, in device order."""
        start = time.monotonic()

        def read_devices():
            config = vm.obj.config
            if config is None:
                raise VMCreatorError(f"VM '{vm.name}' has no readable configuration",
                                     error_code="CONFIG_UNAVAILABLE")
            return list(config.hardware.device)

        devices = self._remote(f"retrieve hardware devices of '{vm.name}'", read_devices)
        adapters = [adapter_from_device(d) for d in devices
                    if isinstance(d, vim.vm.device.VirtualEthernetCard)]
        self.log(f"Retrieved {len(devices)} hardware devices from '{vm.name}', "
                 f"{len(adapters)} network adapter(s) (took {format_elapsed(self._elapsed(start))}).")
        return adapters

    def build_device_edits(self, adapters: List[NetworkAdapter],
                           identity: PortGroupIdentity) -> Tuple[DeviceEditInstruction, ...]:
        """One in-place edit per adapter; key, variant, address type and connectable are kept."""
        edits = []
        for adapter in adapters:
            self.log(f"  Template NIC Label: {adapter.label}, Original Backing: "
                     f"{type(adapter.backing).__name__ if adapter.backing else None}")

            degraded = adapter.variant is AdapterVariant.GENERIC
            if degraded:
                self.log(f"  WARNING: Unsupported NIC type {adapter.device_type or 'unknown'} "
                         f"(Key: {adapter.key}). Attempting generic VirtualEthernetCard for edit.", "WARN")

            edits.append(DeviceEditInstruction(adapter=adapter.with_backing(identity.to_backing()),
                                               degraded=degraded))
            self.log(f"  NIC (Key: {adapter.key}) prepared for connection to DVS UUID "
                     f"'{identity.switch_uuid}', PortgroupKey '{identity.portgroup_key}'.")

        if not edits:
            self.log("No VirtualEthernetCard devices found in the template. "
                     "Skipping network device modification for clone.")
        return tuple(edits)

    def translate_network(self, network: InventoryRef,
                          template: InventoryRef) -> Tuple[DeviceEditInstruction, ...]:
        identity = self.resolve_portgroup_identity(network)
        adapters = self.read_network_adapters(template)
        return self.build_device_edits(adapters, identity)
