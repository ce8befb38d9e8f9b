"""FNV-1a 64-bit hash and hashed feature indices."""

FNV1A_OFFSET: int = 14695981039346656037
FNV1A_PRIME: int = 1099511628211
_MASK64: int = 0xFFFFFFFFFFFFFFFF


def fnv1a_u64(s: str) -> int:
    """Compute FNV-1a 64-bit hash of a string (UTF-8 bytes)."""
    h = FNV1A_OFFSET
    for byte in s.encode("utf-8"):
        h ^= byte
        h = (h * FNV1A_PRIME) & _MASK64
    return h


def feature_index(name: str, bits: int = 18) -> int:
    """Map a feature name into ``[0, 2**bits)`` by folding its hash.

    The high half is xor-ed into the low half before masking so that
    names differing only in their last bytes still spread over the table.
    """
    if not 1 <= bits <= 32:
        raise ValueError(f"bits must be in [1, 32], got {bits}")
    h = fnv1a_u64(name)
    return ((h >> 32) ^ h) & ((1 << bits) - 1)
