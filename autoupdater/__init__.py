"""
Flatpak autoupdater — autoinstall resolution and the poll/apply update cycle.
"""

__version__ = "0.1.0"
