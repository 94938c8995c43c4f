import os
import sys
from typing import Any

DISABLED = os.environ.get("PROXYTESTKIT_DEBUG", "") in ("", "0")


def debug(*args: Any) -> None:
    if not DISABLED:
        print(*args, file=sys.stderr)
