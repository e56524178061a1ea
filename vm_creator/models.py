"""
Data model for the clone workflow.

Inventory references, paths, adapters, backings and the clone request and
outcome types. Everything here is built during one resolution/translation
pass and consumed immediately; nothing is persisted.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Tuple, Union


class ObjectKind(Enum):
    """Inventory object kinds, valued by their vSphere type name"""
    DATACENTER = "Datacenter"
    CLUSTER = "ClusterComputeResource"
    RESOURCE_POOL = "ResourcePool"
    DATASTORE = "Datastore"
    NETWORK = "Network"
    VIRTUAL_MACHINE = "VirtualMachine"
    FOLDER = "Folder"
    DISTRIBUTED_SWITCH = "DistributedVirtualSwitch"
    TASK = "Task"

    @property
    def label(self) -> str:
        return {
            ObjectKind.CLUSTER: "Cluster",
            ObjectKind.RESOURCE_POOL: "Resource Pool",
            ObjectKind.VIRTUAL_MACHINE: "VM",
            ObjectKind.FOLDER: "VM Folder",
            ObjectKind.DISTRIBUTED_SWITCH: "Distributed Switch",
        }.get(self, self.value)


@dataclass(frozen=True)
class InventoryRef:
    """
    Opaque reference to one inventory object.

    Equality and hashing use the MoRef id only. The pyVmomi managed object
    the reference was resolved from rides along in ``obj`` so later steps can
    call methods on it.
    """
    kind: ObjectKind = field(compare=False)
    id: str
    name: str = field(default="", compare=False)
    obj: Any = field(default=None, compare=False, repr=False)

    @classmethod
    def from_managed_object(cls, kind: ObjectKind, obj: Any, name: str = "") -> "InventoryRef":
        return cls(kind=kind, id=str(obj._moId), name=name, obj=obj)

    def __str__(self) -> str:
        return f"{self.name} (MOID: {self.id})" if self.name else self.id


@dataclass(frozen=True)
class InventoryPath:
    """A bare object name or a full inventory path such as ``/DC/vm/Templates/T1``"""
    raw: str

    @property
    def is_path(self) -> bool:
        return "/" in self.raw

    @property
    def is_absolute(self) -> bool:
        """Rooted at the inventory root folder rather than at a datacenter folder"""
        return self.raw.startswith("/")

    @property
    def relative(self) -> str:
        # SearchIndex.FindByInventoryPath expects no leading slash
        return self.raw.strip("/")

    @property
    def name(self) -> str:
        return self.relative.rsplit("/", 1)[-1]

    def within(self, datacenter_path: str) -> bool:
        return self.relative.startswith(f"{datacenter_path.strip('/')}/")

    @classmethod
    def under(cls, datacenter: str, folder: str, relative: str) -> "InventoryPath":
        return cls(f"/{datacenter.strip('/')}/{folder}/{relative.strip('/')}")

    @classmethod
    def folder_under(cls, datacenter: str, folder: str) -> "InventoryPath":
        return cls.under(datacenter, "vm", folder)

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class SearchScope:
    """The one datacenter every lookup after the first is scoped to"""
    datacenter: InventoryRef
    # Inventory path of the datacenter without leading slash, e.g. "DC1" or "Region/DC1"
    path: str = ""

    @property
    def name(self) -> str:
        return self.datacenter.name


class AdapterVariant(Enum):
    """Concrete virtual NIC types, valued by their vSphere type name"""
    VMXNET3 = "VirtualVmxnet3"
    E1000 = "VirtualE1000"
    E1000E = "VirtualE1000e"
    PCNET32 = "VirtualPCNet32"
    GENERIC = "VirtualEthernetCard"


@dataclass(frozen=True)
class ConnectableState:
    start_connected: Optional[bool] = None
    allow_guest_control: Optional[bool] = None
    connected: Optional[bool] = None
    status: Optional[str] = None
    migrate_connect: Optional[str] = None


@dataclass(frozen=True)
class NetworkNameBacking:
    """Standard switch backing addressed by network name"""
    device_name: Optional[str] = None
    network_id: Optional[str] = None
    auto_detect: bool = False


@dataclass(frozen=True)
class DistributedPortBacking:
    """Distributed switch port group backing"""
    switch_uuid: str
    portgroup_key: str
    port_key: Optional[str] = None
    connection_cookie: Optional[int] = None


@dataclass(frozen=True)
class UnrecognizedBacking:
    """Any backing type this tool does not model (opaque networks, SR-IOV, ...)"""
    type_name: str
    # (property name, printable value) pairs as read from vCenter
    properties: Tuple[Tuple[str, str], ...] = ()


BackingDescriptor = Union[NetworkNameBacking, DistributedPortBacking, UnrecognizedBacking]


@dataclass(frozen=True)
class NetworkAdapter:
    key: int
    variant: AdapterVariant
    address_type: Optional[str] = None
    connectable: Optional[ConnectableState] = None
    backing: Optional[BackingDescriptor] = None
    label: str = ""
    mac_address: Optional[str] = None
    device_type: str = ""
    # pyVmomi backing object the adapter was read from, kept for inspection
    raw_backing: Any = field(default=None, compare=False, repr=False)

    def with_backing(self, backing: BackingDescriptor) -> "NetworkAdapter":
        return replace(self, backing=backing, raw_backing=None)


@dataclass(frozen=True)
class PortGroupIdentity:
    portgroup_key: str
    switch_uuid: str

    def to_backing(self) -> DistributedPortBacking:
        return DistributedPortBacking(switch_uuid=self.switch_uuid, portgroup_key=self.portgroup_key)


@dataclass(frozen=True)
class DeviceEditInstruction:
    """Edit one existing adapter in place; only the backing differs from the template"""
    adapter: NetworkAdapter
    degraded: bool = False
    operation: str = field(default="edit", init=False)


@dataclass(frozen=True)
class CloneRequest:
    source_template: InventoryRef
    destination_folder: InventoryRef
    name: str
    datastore: InventoryRef
    resource_pool: InventoryRef
    power_on: bool = False
    template: bool = False
    device_edits: Tuple[DeviceEditInstruction, ...] = ()


@dataclass(frozen=True)
class CloneSuccess:
    new_vm: InventoryRef
    task_id: Optional[str] = None
    elapsed: float = 0.0

    ok = True


@dataclass(frozen=True)
class CloneFailure:
    message: str
    platform_detail: Optional[str] = None
    step: Optional[str] = None

    ok = False


CloneOutcome = Union[CloneSuccess, CloneFailure]
