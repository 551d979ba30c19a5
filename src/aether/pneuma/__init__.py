"""
Pneuma - JSON-RPC interaction layer.

Transports (HTTP via httpx, WebSocket via websockets) share one request
lifecycle: id correlation, per-attempt timeout and retry with backoff.
``Client`` adds method validation and contract helpers on top.
"""
