"""Shared constants for llvmenv CLI commands."""

# Exit code for resolution failures; shell hooks treat it as "leave PATH alone"
RESOLUTION_EXIT_CODE = 2

# Exit code for every other llvmenv error
ERROR_EXIT_CODE = 1

EDITOR_ENV = "EDITOR"
DEFAULT_EDITOR = "vi"
