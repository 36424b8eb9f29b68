"""Numerical filename pattern detection.

Given a set of paths, find a literal template with numbered slots, e.g.

    /data/spim_TL{0}_Angle{1}.tif

The template is built by repeatedly taking the longest common prefix of all
(remaining) paths as a literal, then one run of digits as a slot. Detection
stops when the remainders no longer start with digits.
"""

import logging
import os
import re
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

_LEADING_NUMBER_RE = re.compile(r"(\d+)(.*)", re.DOTALL)


def common_prefix(strings: list[str]) -> str:
    """Longest common prefix; an empty list has an empty prefix."""
    if not strings:
        return ""
    return os.path.commonprefix(strings)


def split_leading_numbers(
    strings: list[str],
) -> Optional[tuple[list[str], list[str]]]:
    """Split every string into (leading digits, remainder).

    Returns None if any string does not start with a digit.
    """
    numbers = []
    remainders = []
    for s in strings:
        m = _LEADING_NUMBER_RE.fullmatch(s)
        if m is None:
            return None
        numbers.append(m.group(1))
        remainders.append(m.group(2))
    return numbers, remainders


class NumericalFilenamePatternDetector:
    """Detects numbered slots shared by a set of file paths."""

    def __init__(self, paths: Iterable[str]):
        self.paths = [str(p) for p in paths]
        self.literals: list[str] = []
        """Literal text around the slots; always one more than there are slots."""
        self.values: list[list[str]] = []
        """Per slot, the string captured from each path (leading zeros kept)."""
        self.open_tail = False
        """Whether the paths end in differing, non-numeric text."""
        self._detect()
        self._regex = self._build_regex()
        logger.debug(
            f"Detected filename pattern {self.string_representation()} "
            f"with {self.num_variables} slot(s)"
        )

    def _detect(self) -> None:
        remaining = list(self.paths)
        while True:
            # Never end a literal inside a number, so "a10"/"a11" yield
            # slot values 10 and 11 instead of 0 and 1.
            prefix = common_prefix(remaining).rstrip("0123456789")
            self.literals.append(prefix)
            remaining = [s[len(prefix) :] for s in remaining]

            split = split_leading_numbers(remaining)
            if split is None:
                self.open_tail = any(remaining)
                break

            numbers, remaining = split
            self.values.append(numbers)

    def _build_regex(self) -> re.Pattern:
        parts = []
        for literal in self.literals[:-1]:
            parts.append(re.escape(literal) + r"(\d+)")
        parts.append(re.escape(self.literals[-1]))
        if self.open_tail:
            parts.append(".*")
        return re.compile("".join(parts), re.DOTALL)

    @property
    def num_variables(self) -> int:
        return len(self.values)

    def values_for_variable(self, n: int) -> list[str]:
        return self.values[n]

    def distinct_values(self, n: int) -> list[str]:
        """The distinct strings captured by slot n, ordered numerically."""
        return sorted(set(self.values[n]), key=lambda s: (int(s), s))

    def string_representation(self) -> str:
        parts = []
        for i, literal in enumerate(self.literals[:-1]):
            parts.append(f"{literal}{{{i}}}")
        parts.append(self.literals[-1])
        if self.open_tail:
            parts.append("*")
        return "".join(parts)

    def match_strings(self, path: str) -> Optional[list[str]]:
        m = self._regex.fullmatch(str(path))
        if m is None:
            return None
        return list(m.groups())

    def match(self, path: str) -> Optional[list[int]]:
        """Re-extract the slot values from a path, or None if it does not fit."""
        strings = self.match_strings(path)
        if strings is None:
            return None
        return [int(s) for s in strings]

    def z_group_path(self, paths: list[str], z_slots: list[int]) -> str:
        """Template path naming every plane of a Z group.

        The first path is used as the base; each Z slot is replaced by the
        sorted values present in the group, e.g. `img_z<00,01,02>.tif`.
        """
        matches = []
        for path in paths:
            m = self._regex.fullmatch(path)
            if m is None:
                raise ValueError(f"Path {path} does not match {self.string_representation()}")
            matches.append(m)

        base = matches[0]
        base_path = paths[0]
        pieces = []
        position = 0
        for slot in sorted(z_slots):
            start, end = base.span(slot + 1)
            present = sorted({m.group(slot + 1) for m in matches}, key=lambda s: (int(s), s))
            pieces.append(base_path[position:start])
            pieces.append("<" + ",".join(present) + ">")
            position = end
        pieces.append(base_path[position:])
        return "".join(pieces)
