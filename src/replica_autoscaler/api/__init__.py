"""
HTTP API for inspecting and managing autoscaled workloads
"""

from .server import APIServer

__all__ = ["APIServer"]
