"""
Default configuration values for async-convergence.

These were tuned against one external system's observed flakiness window.
Override them per call rather than relying on them to generalize.
"""

# Attempt budget, indexed 0..DEFAULT_MAX_TRIES inclusive
DEFAULT_MAX_TRIES = 1_000

# Consecutive true results required before declaring convergence
DEFAULT_MINIMUM_CONSECUTIVE_CONSISTENCY = 3

# Seconds to sleep between attempts once past the halfway point
DEFAULT_SLEEP_DURATION = 0.025

# Report timeouts as inconclusive instead of raising
DEFAULT_SKIP_ON_TIMEOUT = True
