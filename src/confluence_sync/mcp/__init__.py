"""MCP server exposing the Confluence pull sync as tools."""
