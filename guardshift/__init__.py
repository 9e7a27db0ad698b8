"""Service surfaces (MCP tools, JSON HTTP routes) for the assignment engine."""
