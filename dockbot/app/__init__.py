"""
dockbot HTTP application.
"""
