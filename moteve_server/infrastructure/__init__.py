"""
Infrastructure layer: configuration, logging, part storage and the
concrete upload and user directory services.
"""
