from typing import Any, Iterable, Mapping


def require_positive_int(v: Any, name: str = "value") -> None:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"{name} must be an integer")
    if v <= 0:
        raise ValueError(f"{name} must be > 0")


def missing_fields(data: Mapping[str, Any], required: Iterable[str]) -> list:
    return [k for k in required if data.get(k) is None or (isinstance(data.get(k), str) and not data[k].strip())]
