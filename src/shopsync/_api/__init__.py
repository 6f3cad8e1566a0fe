"""Endpoint modules.

Each function performs exactly one HTTP call through a
:class:`shopsync._transport.Transport` and parses the response.  Caching,
coalescing and retry are layered on top by :class:`shopsync.client.ShopClient`.
"""
