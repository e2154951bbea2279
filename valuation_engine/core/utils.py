def normalize_address(addr: str) -> str:
    """
    Minimal normalization so cache keys & seeds are stable:
    - trim whitespace
    - lowercase
    - collapse multiple spaces
    """
    return " ".join(addr.strip().lower().split())

def fnv1a_32(s: str) -> int:
    """Deterministic, fast hash for seed generation."""
    h = 0x811c9dc5
    for c in s.encode("utf-8"):
        h ^= c
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h

def money(amount: float) -> str:
    """$1,234,567 style, whole dollars."""
    return f"${int(round(amount)):,}"

def mean(values: list[float]) -> float | None:
    """Arithmetic mean, None for an empty list rather than ZeroDivisionError."""
    return sum(values) / len(values) if values else None
