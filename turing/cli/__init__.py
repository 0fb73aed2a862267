"""
Command Line Interfaces
=======================

- ``hooks_cli``: capture and restore hook entry points
- ``status_cli``: project and workstation status
- ``records_cli``: decision records and context threads
"""
