"""MCP server exposing the console façade."""
