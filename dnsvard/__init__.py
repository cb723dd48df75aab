"""Local DNS routing helpers: resolver files, launchd agents, leases, route merging and a TCP proxy."""

__version__ = "0.1.0"