# Environment variable names for CLI options (when not passed as flags)
DEBUG_ENVVAR = "DEBUG"
ROLLOUT_CONCURRENCY_ENVVAR = "ROLLOUT_CONCURRENCY"
ROLLOUT_TIMEOUT_ENVVAR = "ROLLOUT_TIMEOUT"

CONFIRMATION_WORD = "yes"
