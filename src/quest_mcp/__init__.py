"""Quest Engine MCP: requirement-tree task evaluation served over MCP."""

__version__ = "0.1.0"
