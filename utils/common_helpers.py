import math
from typing import Any, Dict, Optional

import httpx


def safe_float(x: Any) -> Optional[float]:
    """float(x), or None for missing / unparseable / NaN / inf values."""
    if x is None or isinstance(x, bool):
        return None
    try:
        f = float(x)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def safe_div(n: Optional[float], d: Optional[float]) -> Optional[float]:
    if n is None or d in (None, 0):
        return None
    return n / d


def mul_opt(a: Optional[float], b: Optional[float]) -> Optional[float]:
    return a * b if a is not None and b is not None else None


def safe_json(resp: httpx.Response) -> Optional[Dict[str, Any]]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
