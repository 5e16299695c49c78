"""cloudkube: discover cloud credentials, connect to their Kubernetes clusters
and work with the resources inside them.

The operations live under :mod:`cloudkube.utils`; :mod:`cloudkube.mcp`
exposes them as FastMCP tools.
"""
