"""
Key/value storage used for package documents, tarballs and cache sidecars.

Keys are ``/``-separated relative paths such as ``lodash/meta.json`` or
``@scope/pkg/-/@scope/pkg-1.0.0.tgz``. Values are raw bytes.
"""
