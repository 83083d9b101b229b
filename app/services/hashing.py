"""
Deterministic bucketing for experiment assignment.

The hash is the classic ``h = h * 31 + c`` string hash over UTF-16 code units
with 32-bit signed wrap-around, returned as an absolute value. It must stay
bit-for-bit stable: browser clients compute the same buckets, and changing it
would reshuffle every subject that has no stored assignment yet.
It is fast and evenly spread, not cryptographic.
"""

BUCKET_COUNT = 100


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def _utf16_code_units(text: str):
    encoded = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(encoded), 2):
        yield encoded[i] | (encoded[i + 1] << 8)


def hash_string(text: str) -> int:
    accumulator = 0
    for code in _utf16_code_units(text):
        accumulator = _to_int32((accumulator << 5) - accumulator + code)
    return abs(accumulator)


def compute_bucket(key: str) -> int:
    """Map a key onto 0..99."""
    return hash_string(key) % BUCKET_COUNT


def bucket_key(experiment_id: str, subject_key: str) -> str:
    return f"{experiment_id}-{subject_key}"
