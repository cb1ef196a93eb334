"""Folder Monitor — email alert when no new files arrive in a folder.

Watches a folder for new files and, during a configured daily time
window, sends an alert mail once no file has arrived for longer than
the configured threshold.
"""

__version__ = "1.0.0"
__app_name__ = "Folder Monitor"
