"""
Node Editor Backend - HTTP/WebSocket service and CLI around the editor core.

The service holds one editing session and stores graph snapshots per user.
"""
