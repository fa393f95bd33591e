"""
OpenClaw Command Center.

A local control plane for a managed service: it starts, stops and restarts the
process, tracks it through PID records with liveness probing, keeps edits to its
configuration inside a sandbox with a backup before every write, and exposes all
of this through an authenticated HTTP API.
"""

__version__ = "1.0.0"
