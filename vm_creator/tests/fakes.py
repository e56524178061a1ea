"""In-memory stand-ins for the bits of a vCenter inventory the workflow touches."""

from unittest.mock import MagicMock

from pyVmomi import vim

from vm_creator.cancel import CancelToken
from vm_creator.config import Settings
from vm_creator.creator import VMCreator


def managed_object(vim_type, moid, name=None, **attrs):
    """MagicMock that passes isinstance checks for ``vim_type``"""
    obj = MagicMock(spec=vim_type)
    obj._moId = moid
    if name is not None:
        obj.name = name
    for key, value in attrs.items():
        setattr(obj, key, value)
    return obj


def make_settings(**overrides):
    values = {"task_poll_interval": 0.001, "vmware_url": "https://vc.example.com/sdk",
              "vmware_username": "svc-clone", "vmware_password": "secret"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def nic(device_cls, key, backing=None, label=None, mac="00:50:56:aa:bb:01", address_type="assigned"):
    device = device_cls()
    device.key = key
    device.deviceInfo = vim.Description(label=label or f"Network adapter {key - 3999}", summary="VM Network")
    device.addressType = address_type
    device.macAddress = mac
    device.connectable = vim.vm.device.VirtualDevice.ConnectInfo(
        startConnected=True, allowGuestControl=True, connected=False, status="untried")
    device.backing = backing
    return device


def network_name_backing(device_name="VM Network"):
    return vim.vm.device.VirtualEthernetCard.NetworkBackingInfo(deviceName=device_name)


def dvport_backing(switch_uuid, portgroup_key, port_key=None):
    port = vim.dvs.PortConnection(switchUuid=switch_uuid, portgroupKey=portgroup_key)
    if port_key is not None:
        port.portKey = port_key
    return vim.vm.device.VirtualEthernetCard.DistributedVirtualPortBackingInfo(port=port)


def vm_with_devices(moid, name, devices):
    vm = managed_object(vim.VirtualMachine, moid, name)
    vm.config = MagicMock()
    vm.config.hardware.device = list(devices)
    return vm


def dvportgroup(moid, name, key, switch_uuid):
    switch = managed_object(vim.DistributedVirtualSwitch, "dvs-1", "dvSwitch", uuid=switch_uuid)
    pg = managed_object(vim.dvs.DistributedVirtualPortgroup, moid, name, key=key)
    pg.config = MagicMock()
    pg.config.distributedVirtualSwitch = switch
    return pg


def task_info(state, result=None, error=None, progress=None):
    return MagicMock(state=state, result=result, error=error, progress=progress)


class FakeTask:
    """Task whose ``info`` walks through the given TaskInfos, then repeats the last."""

    def __init__(self, *infos, moid="task-101"):
        self._infos = list(infos)
        self._moId = moid
        self.reads = 0

    @property
    def info(self):
        self.reads += 1
        if len(self._infos) > 1:
            return self._infos.pop(0)
        return self._infos[0]


class FakeVCenter:
    """
    Service instance backed by a flat object list.

    Container views return registered objects of the requested type whose
    parent folder is the view root (every object for the root folder).
    Inventory paths are looked up in a dict keyed without leading slash.
    """

    def __init__(self):
        self.si = MagicMock()
        self.content = MagicMock()
        self.si.RetrieveContent.return_value = self.content
        self.objects = []
        self.paths = {}
        self.content.viewManager.CreateContainerView.side_effect = self._create_view
        self.content.searchIndex.FindByInventoryPath.side_effect = lambda path: self.paths.get(path)

    def add(self, obj, parent=None, path=None):
        self.objects.append((parent, obj))
        if path:
            self.paths[path.strip("/")] = obj
        return obj

    def add_datacenter(self, name, moid="datacenter-1"):
        dc = managed_object(vim.Datacenter, moid, name)
        for folder in ("hostFolder", "datastoreFolder", "networkFolder", "vmFolder"):
            setattr(dc, folder, MagicMock(name=f"{name}.{folder}"))
        return self.add(dc, parent=self.content.rootFolder, path=name)

    def _create_view(self, container, types, recursive):
        view = MagicMock()
        view.view = [obj for parent, obj in self.objects
                     if isinstance(obj, tuple(types))
                     and (container is self.content.rootFolder or parent is container)]
        return view


class RecordingCreator(VMCreator):
    """VMCreator that keeps log lines for assertions"""

    def __init__(self, si, settings=None, cancel_token=None):
        super().__init__(si, settings or make_settings(), cancel_token or CancelToken())
        self.messages = []

    def log(self, message, level="INFO"):
        self.messages.append((level, message))

    def logged(self, level):
        return [message for lvl, message in self.messages if lvl == level]


def standard_inventory():
    """
    One datacenter with everything a clone needs:
    cluster CL1 (root pool resgroup-1), pool Gold, datastore DS1, DVPG NET1
    (pg-1 on switch uuid-1), standard network VM Network, template T with a
    single VMXNET3 at key 4000 and folder /DC1/vm/Databases.
    """
    vc = FakeVCenter()
    dc = vc.add_datacenter("DC1")

    root_pool = managed_object(vim.ResourcePool, "resgroup-1", "Resources")
    cluster = vc.add(managed_object(vim.ClusterComputeResource, "domain-c7", "CL1", resourcePool=root_pool),
                     parent=dc.hostFolder)
    vc.add(root_pool, parent=dc.hostFolder)
    vc.add(managed_object(vim.ResourcePool, "resgroup-20", "Gold"), parent=dc.hostFolder)
    vc.add(managed_object(vim.Datastore, "datastore-12", "DS1"), parent=dc.datastoreFolder)
    vc.add(dvportgroup("dvportgroup-30", "NET1", "pg-1", "uuid-1"), parent=dc.networkFolder)
    vc.add(managed_object(vim.Network, "network-5", "VM Network"), parent=dc.networkFolder)

    template = vm_with_devices("vm-42", "T", [
        nic(vim.vm.device.VirtualVmxnet3, 4000, network_name_backing()),
        vim.vm.device.VirtualDisk(key=2000),
    ])
    vc.add(template, parent=dc.vmFolder, path="DC1/vm/Templates/T")
    vc.add(managed_object(vim.Folder, "group-v100", "Databases"), path="DC1/vm/Databases")

    vc.dc = dc
    vc.cluster = cluster
    vc.root_pool = root_pool
    vc.template = template
    return vc
