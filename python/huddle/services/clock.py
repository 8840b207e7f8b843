"""Wall clock in integer milliseconds.

Services call clock.now_ms() through the module so tests can pin time.
"""

import time


def now_ms() -> int:
    return int(time.time() * 1000)
