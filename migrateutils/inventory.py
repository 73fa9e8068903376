#!/usr/bin/env python3
# Disclaimer: This product is not supported by VMware.
# License: https://github.com/vmware/pyvmomi-community-samples/blob/master/LICENSE
'''
Read only queries against a vCenter inventory that build the planner
descriptors, plus the Destination object used to resolve the names in a
plan back into managed objects.
'''
import re
from pyVmomi import vim
from pyVmomi import vmodl
from migrateutils.planner import (VmDescriptor, EnvDescriptor, DestinationInventory,
                                  FolderIndex, VSS, VDS)

MB = 1024 * 1024


def getObject(inv, vimtype, name, verbose=False):
    """
    Get object by name from vcenter inventory
    """

    obj = None
    container = inv.viewManager.CreateContainerView(inv.rootFolder, vimtype, True)
    for i in container.view:
        try:
            if verbose:
                print("Checking %s %s against reference %s" %(i.name, i._moId, name))
            if i.name == name:
                obj = i
                break
        except vmodl.fault.ManagedObjectNotFound:
            # This is if object was deleted after container view was created
            pass
    return obj

def getObjectListFromContainer(inv, container, vimtype):
    """
    Find and return all objects of vimtype in container
    Containers: Folder, Datacenter, ComputeResource, ResourcePool, HostSystem
    """
    view = inv.viewManager.CreateContainerView(container, vimtype, True)
    return view.view

def getDatacenter(entity):
    parent = entity.parent
    while parent is not None and not isinstance(parent, vim.Datacenter):
        parent = parent.parent
    return parent

def getNics(vm):
    return [d for d in vm.config.hardware.device
            if isinstance(d, vim.vm.device.VirtualEthernetCard)]

def getDiskCount(vm):
    return len([d for d in vm.config.hardware.device
                if isinstance(d, vim.vm.device.VirtualDisk)])

def getNetworkName(vm, nic):
    '''
    Name of the network a vNIC is currently attached to, None if the
    backing cannot be resolved
    '''
    backing = nic.backing
    if isinstance(backing, vim.vm.device.VirtualEthernetCard.DistributedVirtualPortBackingInfo):
        key = backing.port.portgroupKey
        for n in vm.network:
            if isinstance(n, vim.dvs.DistributedVirtualPortgroup) and n.key == key:
                return n.name
        return None
    if isinstance(backing, vim.vm.device.VirtualEthernetCard.OpaqueNetworkBackingInfo):
        for n in vm.network:
            if isinstance(n, vim.OpaqueNetwork) and \
               n.summary.opaqueNetworkId == backing.opaqueNetworkId:
                return n.name
        return None
    if isinstance(backing, vim.vm.device.VirtualEthernetCard.NetworkBackingInfo):
        return backing.deviceName
    return None

def getFolderName(vm):
    # the root VM folder of a datacenter is not a placement target
    parent = vm.parent
    if isinstance(parent, vim.Folder) and not isinstance(parent.parent, vim.Datacenter):
        return parent.name
    return None

def getPrimaryDatastore(vm):
    '''
    Datastore holding the vmx file, e.g. "[ds1] web01/web01.vmx"
    '''
    path = vm.config.files.vmPathName if vm.config.files else None
    if path:
        m = re.match(r"^\[([^\]]+)\]", path)
        if m:
            for ds in vm.datastore:
                if ds.name == m.group(1):
                    return ds
    if vm.datastore:
        return vm.datastore[0]
    return None

def getDatastoreCluster(datastore):
    if datastore is not None and isinstance(datastore.parent, vim.StoragePod):
        return datastore.parent.name
    return None

def describeVm(vm):
    primary = getPrimaryDatastore(vm)
    datastores = [ds.name for ds in vm.datastore]
    if primary is not None:
        datastores.remove(primary.name)
        datastores.insert(0, primary.name)
    dc = getDatacenter(vm)
    return VmDescriptor(name=vm.name,
                        uuid=vm.config.instanceUuid,
                        host=vm.runtime.host.name if vm.runtime.host else None,
                        datastores=datastores,
                        diskCount=getDiskCount(vm),
                        memorySize=vm.config.hardware.memoryMB * MB,
                        usedStorage=vm.summary.storage.committed,
                        nics=[(n.deviceInfo.label, getNetworkName(vm, n)) for n in getNics(vm)],
                        folder=getFolderName(vm),
                        datacenter=dc.name if dc else None,
                        datastoreCluster=getDatastoreCluster(primary))

def getVmsOnHost(host, name=None):
    vmList = []
    for vm in host.vm:
        try:
            if vm.config is None or vm.config.template:
                continue
            if name and vm.name != name:
                continue
            vmList.append(vm)
        except vmodl.fault.ManagedObjectNotFound:
            # VM went away while iterating the host
            pass
    return vmList

def findSwitch(inv, host, switch, switchType):
    '''
    Standard vSwitch configured on the host, or distributed switch the host
    is a member of.  None if not found.
    '''
    if switchType == VSS:
        for vs in host.config.network.vswitch:
            if vs.name == switch:
                return vs
        return None
    vds = getObject(inv, [vim.DistributedVirtualSwitch], switch)
    if vds is None:
        return None
    for member in vds.summary.hostMember or []:
        if member == host:
            return vds
    return None

def getVmFolders(inv, datacenter):
    return getObjectListFromContainer(inv, datacenter.vmFolder, [vim.Folder])

def buildFolderIndex(inv, vc):
    index = FolderIndex(vc)
    for dc in getObjectListFromContainer(inv, inv.rootFolder, [vim.Datacenter]):
        index.addAll(dc.name, [f.name for f in getVmFolders(inv, dc)])
    return index


class Destination():
    '''
    Managed objects on the destination side of a migration
    '''
    def __init__(self, inv, host=None, datacenter=None, switch=None, switchType=VDS):
        self.inv = inv
        self.host = host
        self.datacenter = datacenter
        self.switch = switch
        self.switchType = switchType

    def getResourcePool(self):
        return self.host.parent.resourcePool

    def getDatastores(self):
        return [ds for ds in self.host.datastore if ds.summary.accessible]

    def getDatastore(self, name):
        for ds in self.getDatastores():
            if ds.name == name:
                return ds
        return None

    def getPortgroups(self):
        if self.switchType == VSS:
            names = [pg.spec.name for pg in self.host.config.network.portgroup
                     if pg.spec.vswitchName == self.switch.name]
            return [n for n in self.host.network
                    if not isinstance(n, vim.dvs.DistributedVirtualPortgroup)
                    and n.name in names]
        return [pg for pg in self.switch.portgroup
                if not getattr(pg.config, "uplink", False)]

    def getPortgroup(self, name):
        for pg in self.getPortgroups():
            if pg.name == name:
                return pg
        return None

    def getFolder(self, name):
        if name is None:
            return self.datacenter.vmFolder
        for f in getVmFolders(self.inv, self.datacenter):
            if f.name == name:
                return f
        return None

    def getClusters(self):
        '''
        StoragePods of the destination datacenter, members restricted to
        datastores the destination host can reach
        '''
        reachable = dict([(ds.name, ds) for ds in self.getDatastores()])
        clusters = {}
        for pod in getObjectListFromContainer(self.inv, self.datacenter.datastoreFolder,
                                              [vim.StoragePod]):
            members = [(ds.name, reachable[ds.name].summary.freeSpace)
                       for ds in pod.childEntity if ds.name in reachable]
            if members:
                clusters[pod.name] = members
        return clusters

    def snapshot(self):
        return DestinationInventory(
            datastores=dict([(ds.name, ds.summary.freeSpace) for ds in self.getDatastores()]),
            clusters=self.getClusters(),
            portgroups=[pg.name for pg in self.getPortgroups()],
            folders=[f.name for f in getVmFolders(self.inv, self.datacenter)])


def describeEnvironment(inv, sourceVc, destVc, destHost, switch, switchType):
    '''
    Returns (Destination, EnvDescriptor).  A missing host or switch is
    flagged on the descriptor and left for validateEnvironment() to report.
    '''
    host = getObject(inv, [vim.HostSystem], destHost)
    if host is None:
        env = EnvDescriptor(sourceVc, destVc, destHost, switch, switchType, hostExists=False)
        return Destination(inv, switchType=switchType), env

    dc = getDatacenter(host)
    switchObj = findSwitch(inv, host, switch, switchType)
    dest = Destination(inv, host=host, datacenter=dc, switch=switchObj, switchType=switchType)
    if switchObj is None:
        env = EnvDescriptor(sourceVc, destVc, destHost, switch, switchType,
                            datacenter=dc.name, switchExists=False)
        return dest, env

    env = EnvDescriptor(sourceVc, destVc, destHost, switch, switchType,
                        datacenter=dc.name, inventory=dest.snapshot())
    return dest, env
