"""
Domain models, errors and npm naming helpers shared by every layer.
"""
