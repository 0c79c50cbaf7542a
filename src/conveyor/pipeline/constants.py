"""Pipeline engine constants."""

from __future__ import annotations

# Maximum stages per pipeline
MAX_STAGES_PER_PIPELINE: int = 50

# Maximum steps per stage
MAX_STEPS_PER_STAGE: int = 100

# Name reported for the post-build step block
POST_STAGE_NAME: str = "post"

# Captured test stdout/stderr kept in a report summary unless keep_long_stdio
MAX_STDIO_CHARS: int = 4_000

# Exit codes of a pipeline invocation
EXIT_SUCCEEDED: int = 0
EXIT_FAILED: int = 1

# Environment variable prefix for resolved tool versions
TOOL_ENV_PREFIX: str = "CONVEYOR_TOOL_"

# Environment variable carrying an opaque credential reference to git helpers
CREDENTIALS_ENV_VAR: str = "CONVEYOR_CREDENTIALS_ID"
