"""Self-updating service manager.

Polls a remote Git repository, pulls new commits into a local workspace
and restarts the managed service (pm2, docker or a custom command).
"""

__version__ = "0.1.0"
