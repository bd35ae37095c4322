"""Tool-server protocol client: SSE framing, request correlation, session lifecycle."""
