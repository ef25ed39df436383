"""Minimum unique prefixes for tag names shown in the compact report."""
from typing import Dict, Iterable, List

MIN_PREFIX_LENGTH = 3


def compute_minimum_unique_prefixes(tag_names: Iterable[str], min_length: int = MIN_PREFIX_LENGTH) -> Dict[str, str]:
    """
    Map each tag name to its shortest prefix (at least ``min_length`` long)
    that no other distinct name starts with.

    A name that never becomes unique, including one shorter than
    ``min_length``, maps to itself. Duplicate names are fine: a name is never
    compared against itself. Quadratic in the number of tags, which stays
    small in practice.
    """
    names: List[str] = list(dict.fromkeys(tag_names))
    prefix_map: Dict[str, str] = {}
    for name in names:
        length = min_length
        while length <= len(name):
            prefix = name[:length]
            if not any(other != name and other.startswith(prefix) for other in names):
                prefix_map[name] = prefix
                break
            length += 1
        else:
            prefix_map[name] = name
    return prefix_map


def abbreviate_tags(tag_names: Iterable[str], prefix_map: Dict[str, str]) -> List[str]:
    return [prefix_map.get(name, name) for name in tag_names]
