"""Azure DevOps domain tools.

Each module owns one :class:`~tl.ado_mcp.tools.base.ToolGroup`; the ordered
list of all of them lives in :mod:`tl.ado_mcp.tools.catalog`.
"""
