"""
Concrete services: upload session management and the user directory.
"""
