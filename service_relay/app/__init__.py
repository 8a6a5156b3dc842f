"""
Relay Service package for the Relay Access layer.

The relay serves a single root endpoint with two modes:
- Proxy: forward an arbitrary request to a caller-supplied URL and stream
  the response back, after SSRF and loop checks.
- Transform: serve cached configuration documents, optionally routing their
  api endpoints through the relay and base58-encoding the result.

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.guard: Target URL classification.
- app.proxy: Header filtering and the outbound forwarder.
- app.transform: Format directives, prefix rewriting, base58.
- app.caching: Source document cache with stale fallback.
- app.adapters: Remote and local source loaders.
- app.domain: Source registry and request dispatch.
"""
