"""
npm-compatible package registry implemented with FastAPI.

The registry runs in one of two modes:
* ``local``: packages are published to this server and served from storage.
* ``proxy``: packages are fetched from an upstream registry and cached.
"""
