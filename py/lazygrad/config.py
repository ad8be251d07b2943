"""config — environment-driven settings for lazygrad."""

import os


def getenv(key, default=0):
    """Read an environment variable, coerced to the type of ``default``."""
    val = os.environ.get(key)
    if val is None:
        return default
    return type(default)(val)


DEBUG = getenv('LAZYGRAD_DEBUG', 0)

# When set, a CSE hit whose recorded output shape differs from the requested
# one raises instead of silently keeping the first shape.
STRICT_SHAPES = getenv('LAZYGRAD_STRICT_SHAPES', 1)
