"""
Registry services: tarball reading, content rewriting, metadata merging,
the upstream client and the proxy cache.
"""
