"""Centralized constants for the self-updater."""

# Workspace
LOCK_FILE_NAME = ".self-updater.lock"
DEFAULT_LOCK_STALE_AFTER_SECONDS = 3600

# Files whose change triggers the install command
DEFAULT_DEPENDENCY_FILES = (
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "requirements.txt",
    "pyproject.toml",
    "poetry.lock",
    "uv.lock",
    "Pipfile.lock",
)
DEFAULT_INSTALL_COMMAND = "npm install"

# Scheduling (seconds)
MIN_INTERVAL_SECONDS = 15
DEFAULT_INTERVAL_SECONDS = 60

# Commit resolution
COMMIT_API_TIMEOUT = 10.0
USER_AGENT = "self-updater"

# Files
DEFAULT_CONFIG_PATH = "updater.config.json"
DEFAULT_STATE_PATH = ".self-updater/state.json"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 5

# Captured command output kept in errors and logs
MAX_OUTPUT_CHARS = 2000
