import types

import pytest
from unittest.mock import MagicMock
from pyVmomi import vim

from migrateutils.planner import (VmDescriptor, EnvDescriptor, DestinationInventory,
                                  PlannerConfig, GB, VDS)


def named(name, cls=None):
    # MagicMock(name=...) names the mock itself, not the attribute
    m = MagicMock()
    m.name = name
    if cls is not None:
        m.__class__ = cls
    return m


def makeVm(**kwargs):
    params = dict(name="web01", uuid="5001aa11-0000-0000-0000-000000000001",
                  host="esx01", datastores=["ds1"], diskCount=1,
                  memorySize=4 * GB, usedStorage=50 * GB,
                  nics=[("Network adapter 1", "VM Network")],
                  folder=None, datacenter="DC1", datastoreCluster=None)
    params.update(kwargs)
    return VmDescriptor(**params)


def makeNic(label, backing, key=4000):
    return vim.vm.device.VirtualVmxnet3(key=key,
                                        deviceInfo=vim.Description(label=label, summary=""),
                                        backing=backing)


def standardBacking(network):
    return vim.vm.device.VirtualEthernetCard.NetworkBackingInfo(deviceName=network)


class FakeTask():
    '''
    vCenter task whose state advances one step each time info is read
    '''
    def __init__(self, states, result=None, error=None):
        self.states = list(states)
        self.result = result
        self.error = error

    @property
    def info(self):
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return types.SimpleNamespace(state=state, result=self.result,
                                     error=self.error, key="task-1")


def successTask(result=None):
    return FakeTask([vim.TaskInfo.State.success], result=result)


class FakeLogger():
    def __init__(self):
        self.infos = []
        self.warns = []
        self.errors = []

    def info(self, msg):
        self.infos.append(msg)

    def warn(self, msg):
        self.warns.append(msg)

    def error(self, msg):
        self.errors.append(msg)
        raise SystemExit(1)

    def close(self):
        pass


@pytest.fixture()
def vmFactory():
    return makeVm


@pytest.fixture()
def destInventory():
    return DestinationInventory(
        datastores={"ds1": 500 * GB, "ds2": 120 * GB, "ds3": 154 * GB},
        clusters={"pod1": [("pod1-ds1", 300 * GB),
                           ("pod1-ds2", 800 * GB),
                           ("pod1-ds3", 800 * GB)]},
        portgroups=["VM Network", "App"],
        folders=["Web", "DB"])


@pytest.fixture()
def env(destInventory):
    return EnvDescriptor("vc-a-uuid", "vc-b-uuid", "esx10", "dvs1", VDS,
                         datacenter="DC2", inventory=destInventory)


@pytest.fixture()
def config():
    return PlannerConfig(dryRun=False)


@pytest.fixture()
def logger():
    return FakeLogger()
