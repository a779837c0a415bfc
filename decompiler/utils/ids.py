"""Helpers for ordering opaque ids and normalising selectors."""
from typing import Iterable, List, Optional, Tuple

from eth_utils import is_hex, remove_0x_prefix, to_bytes

SELECTOR_SIZE = 4


def id_sort_key(identifier) -> Tuple[int, int, str]:
    """
    Deterministic ordering key for ids.

    Hex/decimal ids order by numeric value, anything else (e.g. cloned
    block ids such as ``0x1aB0x2c``) orders lexicographically after them.
    """
    text = str(identifier)
    try:
        return (0, int(text, 0), text)
    except ValueError:
        return (1, 0, text)


def row_sort_key(row: Iterable) -> Tuple:
    return tuple(id_sort_key(part) for part in row)


def sorted_rows(rows: Iterable[tuple]) -> Tuple[tuple, ...]:
    return tuple(sorted(set(rows), key=row_sort_key))


def sorted_ids(ids: Iterable) -> List:
    return sorted(set(ids), key=id_sort_key)


def selector_bytes(selector: str) -> Optional[bytes]:
    """
    Parse a public function selector into its 4 raw bytes.

    Returns None if the selector is not a 4-byte hex string.
    """
    if not isinstance(selector, str) or not is_hex(selector):
        return None
    digits = remove_0x_prefix(selector)
    if len(digits) != SELECTOR_SIZE * 2:
        return None
    return to_bytes(hexstr=selector)
