"""mcp-http utility modules."""
