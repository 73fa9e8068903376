#!/usr/bin/env python3
import sys
from datetime import datetime

class Logger():
    '''
    Run log for the migration scripts.  Every entry is appended to the log
    file and echoed to stdout.  error() is terminal: the entry is written,
    the file closed and the process exits.
    '''
    def __init__(self, filename, echo=True):
        try:
            self.fp = open(filename, "a")
        except OSError as e:
            print("Error in opening log file: %s - %s" %(filename, e))
            sys.exit(1)
        self.filename = filename
        self.echo = echo
        self.ERROR="ERROR"
        self.WARN="WARNING"
        self.INFO="INFO"

    def info(self, msg):
        self.log(level=self.INFO, msg=msg)
    def warn(self, msg):
        self.log(level=self.WARN, msg=msg)
    def error(self, msg):
        self.log(level=self.ERROR, msg=msg)

    def log(self, level, msg):
        try:
            self.fp.write("%s %s - %s\n" %(datetime.now(), level, msg))
            self.fp.flush()
        except (OSError, ValueError) as e:
            print("Failure to write log entry to file - %s" %e)
            sys.exit(1)

        if self.echo:
            if level == self.INFO:
                print(msg)
            else:
                print("%s: %s" %(level, msg))

        if level == self.ERROR:
            sys.stderr.write("Error encountered, exiting.  Check log file %s for more info\n"
                             %self.filename)
            self.close()
            sys.exit(1)

    def close(self):
        if not self.fp.closed:
            self.fp.close()
