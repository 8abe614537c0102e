"""
Provisioning and benchmarking harness for CloudStack management servers.

This package fans out fixture-creation calls (domains, accounts, networks, VMs,
volumes) over a bounded worker pool, times every call, and renders latency
statistics per resource kind as csv, tsv or an aligned table.
"""

from .main import main

__all__ = ["main"]
