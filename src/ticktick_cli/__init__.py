"""TickTick from the command line and as an MCP tool server."""

__version__ = "1.0.0"
