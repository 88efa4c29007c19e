"""
WebSocket gateway and wire events for Catch 5 rooms.

The app itself is built by ``catch5_engine.ws.server.create_app``.
"""
