"""
Integer string-similarity scores on a 0-100 scale.

Plain ratios compare the strings as given; the token variants lowercase and
strip punctuation first (rapidfuzz default processing).
"""
from rapidfuzz import fuzz, utils


def ratio(a: str, b: str) -> int:
    return round(fuzz.ratio(a or "", b or ""))


def partial_ratio(a: str, b: str) -> int:
    return round(fuzz.partial_ratio(a or "", b or ""))


def token_sort_ratio(a: str, b: str) -> int:
    return round(fuzz.token_sort_ratio(a or "", b or "", processor=utils.default_process))


def token_set_ratio(a: str, b: str) -> int:
    return round(fuzz.token_set_ratio(a or "", b or "", processor=utils.default_process))
