"""Folder Mirror: one-way, event-driven folder mirroring.

Watches one or more source folders and copies created, changed and
renamed files into matching destination folders as soon as the
operating system reports the change.
"""

__version__ = "1.0.0"
__app_name__ = "Folder Mirror"
