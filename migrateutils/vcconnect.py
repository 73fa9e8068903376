#!/usr/bin/env python3
# Disclaimer: This product is not supported by VMware.
# License: https://github.com/vmware/pyvmomi-community-samples/blob/master/LICENSE
from pyVim import connect
from pyVmomi import vim
import atexit
import ssl
import OpenSSL
from migrateutils.inventory import getObject


class VcConnect():
    def __init__(self, server, user, password, logger, port=443, verify=False):
        '''
        server - vCenter IP or FQDN
        user - vCenter user with privileges to relocate VMs
        password - password for the user
        logger - migrateutils.logger.Logger, connection failures are fatal
        verify - validate the vCenter SSL certificate
        '''
        self.server = server
        self.user = user
        self.password = password
        self.port = port
        self.verify = verify
        self.logger = logger
        self.si = self.connect()
        self.inv = self.si.RetrieveContent()

    def connect(self):
        try:
            if not self.verify:
                si = connect.SmartConnect(host=self.server, port=self.port,
                                          user=self.user, pwd=self.password,
                                          disableSslCertValidation=True)
            else:
                si = connect.SmartConnect(host=self.server, port=self.port,
                                          user=self.user, pwd=self.password)
        except (IOError, vim.fault.InvalidLogin) as e:
            self.logger.error("Could not connect to vcenter %s: %s"
                              %(self.server, getattr(e, "msg", e)))
            return None

        if not si:
            self.logger.error("Could not connect to vcenter: %s " %self.server)
            return None
        self.logger.info("Connected to vcenter: %s" %self.server)
        atexit.register(connect.Disconnect, si)
        return si

    def getInstanceUuid(self):
        return self.inv.about.instanceUuid

    def getObject(self, vimtype, name):
        return getObject(self.inv, vimtype, name)

    def getThumbprint(self):
        cert = ssl.get_server_certificate((self.server, self.port))
        x509 = OpenSSL.crypto.load_certificate(OpenSSL.crypto.FILETYPE_PEM, cert)
        return x509.digest("SHA1").decode('utf-8')

    def getServiceLocator(self):
        '''
        Credentials and identity of this vcenter, handed to the source
        vcenter for a cross vcenter vMotion
        '''
        up = vim.ServiceLocator.NamePassword(username=self.user, password=self.password)
        return vim.ServiceLocator(credential=up,
                                  instanceUuid=self.getInstanceUuid(),
                                  url="https://%s:%d" %(self.server, self.port),
                                  sslThumbprint=self.getThumbprint())
