#!/usr/bin/env python3
'''
Migration planning for host to host vMotion.

Everything here works on plain descriptors built from a snapshot of the
vCenter inventory (see inventory.py) and never talks to vCenter itself.
planVm() either returns a MigrationPlan (eligible, or skip with a reason)
or raises FatalError when the run cannot continue at all.
'''
import collections

GB = 1024 ** 3
FREE_SPACE_MARGIN = 100 * GB

ELIGIBLE = "eligible"
SKIP = "skip"

VSS = "vss"
VDS = "vds"


class FatalError(Exception):
    '''
    Structural problem with the source or destination topology.  Aborts the
    whole run, never a single VM.
    '''
    pass


class PlannerConfig():
    def __init__(self, singleNicOnly=False, dryRun=True, vmName=None,
                 delay=0, freeSpaceMargin=FREE_SPACE_MARGIN):
        '''
        singleNicOnly - refuse VMs with more than one vNIC, used when moving
                        onto a standard switch
        dryRun - only run vCenter's relocate check, never migrate
        vmName - only consider the VM with this name
        delay - seconds to wait between two real migrations
        freeSpaceMargin - bytes that must remain free on the destination
                          datastore after the move
        '''
        self.singleNicOnly = singleNicOnly
        self.dryRun = dryRun
        self.vmName = vmName
        self.delay = delay
        self.freeSpaceMargin = freeSpaceMargin


class VmDescriptor():
    def __init__(self, name, uuid, host, datastores, diskCount, memorySize,
                 usedStorage, nics, folder=None, datacenter=None,
                 datastoreCluster=None):
        '''
        nics - ordered list of (device label, current network name)
        memorySize, usedStorage - bytes
        folder - name of the VM folder holding the VM, None at the
                 datacenter root
        datastoreCluster - StoragePod owning the primary datastore
        '''
        self.name = name
        self.uuid = uuid
        self.host = host
        self.datastores = list(datastores)
        self.diskCount = diskCount
        self.memorySize = memorySize
        self.usedStorage = usedStorage
        self.nics = list(nics)
        self.folder = folder
        self.datacenter = datacenter
        self.datastoreCluster = datastoreCluster

    @property
    def primaryDatastore(self):
        if self.datastores:
            return self.datastores[0]
        return None


class DestinationInventory():
    def __init__(self, datastores=None, clusters=None, portgroups=None, folders=None):
        '''
        datastores - datastore name -> free bytes
        clusters - datastore cluster name -> [(member name, free bytes), ...]
        portgroups - port group names on the destination switch
        folders - VM folder names in the destination datacenter
        '''
        self.datastores = datastores or {}
        self.clusters = clusters or {}
        self.portgroups = list(portgroups or [])
        self.folders = list(folders or [])


class EnvDescriptor():
    def __init__(self, sourceVc, destVc, destHost, switch, switchType,
                 datacenter=None, inventory=None, hostExists=True, switchExists=True):
        self.sourceVc = sourceVc
        self.destVc = destVc
        self.destHost = destHost
        self.switch = switch
        self.switchType = switchType
        self.datacenter = datacenter
        self.inventory = inventory or DestinationInventory()
        self.hostExists = hostExists
        self.switchExists = switchExists

    @property
    def crossVc(self):
        return self.sourceVc != self.destVc


class MigrationPlan(collections.namedtuple("MigrationPlan",
                                           ["vm", "verdict", "reason", "datastore",
                                            "networks", "folder"])):
    '''
    networks - tuple of (device label, destination port group name or None)
    '''
    __slots__ = ()

    @property
    def eligible(self):
        return self.verdict == ELIGIBLE


def skip(vm, reason):
    return MigrationPlan(vm=vm.name, verdict=SKIP, reason=reason,
                         datastore=None, networks=(), folder=None)


class FolderIndex():
    '''
    Multiset of VM folder names per datacenter of one vCenter.  Folder
    placement is done by name inside a datacenter, so a name must occur at
    most once there.  The same name in two datacenters is fine.
    '''
    def __init__(self, vc):
        self.vc = vc
        self.folders = {}

    def addAll(self, datacenter, names):
        counter = self.folders.setdefault(datacenter, collections.Counter())
        counter.update(names)

    def duplicates(self):
        dups = {}
        for dc, counter in self.folders.items():
            names = sorted([n for n, c in counter.items() if c > 1])
            if names:
                dups[dc] = names
        return dups

    def assertUnique(self):
        dups = self.duplicates()
        if dups:
            detail = "; ".join(["datacenter %s: %s" %(dc, ", ".join(names))
                                for dc, names in sorted(dups.items())])
            raise FatalError("Duplicate VM folder names in vcenter %s - %s"
                             %(self.vc, detail))


def validateEnvironment(env, vms, folderIndexes=None, vmFilter=None):
    '''
    Run-level checks, done before any VM is planned
    '''
    if not env.hostExists:
        raise FatalError("Destination host %s not found in vcenter %s"
                         %(env.destHost, env.destVc))
    if not env.switchExists:
        raise FatalError("%s switch %s not found on destination host %s"
                         %(env.switchType.upper(), env.switch, env.destHost))
    if env.crossVc:
        for index in folderIndexes or []:
            index.assertUnique()
    if not vms:
        if vmFilter:
            raise FatalError("VM %s not found" %vmFilter)
        raise FatalError("No VMs found to migrate")


def selectDatastore(vm, inventory):
    '''
    Returns (datastore name, free bytes), or (None, 0) when nothing matches
    on the destination.  A VM on a datastore cluster goes to the member of
    the equally named destination cluster with the most free space.
    '''
    members = inventory.clusters.get(vm.datastoreCluster) if vm.datastoreCluster else None
    if members:
        # stable sort, first member wins a tie
        ranked = sorted(members, key=lambda m: m[1], reverse=True)
        return ranked[0]
    name = vm.primaryDatastore
    if name in inventory.datastores:
        return name, inventory.datastores[name]
    return None, 0


def mapNetworks(vm, inventory):
    portgroups = set(inventory.portgroups)
    return tuple([(label, network if network in portgroups else None)
                  for label, network in vm.nics])


def mapFolder(vm, inventory):
    if vm.folder and vm.folder in inventory.folders:
        return vm.folder
    return None


def planVm(vm, env, config):
    inventory = env.inventory
    if config.singleNicOnly and len(vm.nics) > 1:
        return skip(vm, "%d vNICs, manual migration required" %len(vm.nics))

    if vm.diskCount > 1 and not inventory.clusters.get(vm.datastoreCluster):
        return skip(vm, "%d disks and no destination datastore cluster for %s"
                    %(vm.diskCount, vm.datastoreCluster or vm.primaryDatastore))

    datastore, free = selectDatastore(vm, inventory)
    if not datastore:
        return skip(vm, "datastore %s not found on destination host %s"
                    %(vm.primaryDatastore, env.destHost))

    remaining = free - (vm.memorySize + vm.usedStorage)
    if remaining < config.freeSpaceMargin:
        return skip(vm, "insufficient space on datastore %s: %.1f GB would remain, %.1f GB required"
                    %(datastore, remaining / GB, config.freeSpaceMargin / GB))

    return MigrationPlan(vm=vm.name, verdict=ELIGIBLE, reason=None,
                         datastore=datastore,
                         networks=mapNetworks(vm, inventory),
                         folder=mapFolder(vm, inventory))
