#!/usr/bin/env python3
# Disclaimer: This product is not supported by VMware.
# License: https://github.com/vmware/pyvmomi-community-samples/blob/master/LICENSE
'''
   Report VM folder names that occur more than once inside a datacenter.
   xvmotion.py places VMs by folder name and refuses to run while any of
   the vCenters involved has such duplicates.
'''
import argparse
import getpass
import sys
from migrateutils.logger import Logger
from migrateutils.vcconnect import VcConnect
from migrateutils.inventory import buildFolderIndex

def parseParameters(argv=None):
    parser = argparse.ArgumentParser(
            description='Check VM folder names are unique per datacenter')
    parser.add_argument('-s', '--vcenter',
            required=True, nargs="+",
            help='One or more Vcenter server names or IPs')
    parser.add_argument('-u', '--user',
            required=True,
            help='User name to connect to vcenter')
    parser.add_argument('-p', '--password',
            required=False,
            help='Password for connection to vcenter, prompted if not provided')
    parser.add_argument('--logfile',
            default="vmotion.log",
            help="Log file, default: vmotion.log")
    parser.add_argument('--verifySSL',
            action="store_true",
            help="Validate the vCenter certificates")
    args = parser.parse_args(argv)
    return args

def reportDuplicates(index, logger):
    dups = index.duplicates()
    if not dups:
        logger.info("vcenter %s: all VM folder names are unique per datacenter" %index.vc)
        return 0
    count = 0
    for dc, names in sorted(dups.items()):
        for n in names:
            logger.warn("vcenter %s datacenter %s: folder '%s' found %d times"
                        %(index.vc, dc, n, index.folders[dc][n]))
            count += 1
    return count

def main():
    args = parseParameters()
    logger = Logger(args.logfile)
    if not args.password:
        args.password = getpass.getpass("vCenter password for %s: " %args.user)

    total = 0
    for server in args.vcenter:
        vc = VcConnect(server, args.user, args.password, logger, verify=args.verifySSL)
        total += reportDuplicates(buildFolderIndex(vc.inv, server), logger)
    logger.close()
    if total:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
