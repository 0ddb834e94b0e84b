#!/usr/bin/env python3
"""
Anchor Diff Engine
==================
Finds the part of a new screen capture that was not on the previous one.

A repainting terminal is not an append-only log: absolute positions mean
nothing across frames. Instead, the trailing lines of the previous capture
(the anchor) are searched for in the current capture, and whatever follows
the match is new.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .screen_normalizer import NormalizedScreen, ScreenNormalizer

SCREEN_CLEARED_NOTICE = "📺 Screen was cleared"

PRIMARY_ANCHOR_LINES = 10
SECONDARY_ANCHOR_LINES = 3


class AnchorMatch(Enum):
    """Which rule produced a diff result"""
    BASELINE = "baseline"  # no previous snapshot
    UNCHANGED = "unchanged"  # same length, nothing to do
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SCREEN_CLEARED = "screen_cleared"
    NO_ANCHOR = "no_anchor"

    def __str__(self):
        return self.value


@dataclass
class DiffResult:
    text: str
    match: AnchorMatch
    anchor_position: int = -1

    @property
    def anchored(self) -> bool:
        """True when the previous snapshot was located in the current one"""
        return self.match in (AnchorMatch.UNCHANGED, AnchorMatch.PRIMARY, AnchorMatch.SECONDARY)


class AnchorDiffEngine:
    """Computes content deltas between two normalized screens"""

    def __init__(self, normalizer: Optional[ScreenNormalizer] = None,
                 primary_lines: int = PRIMARY_ANCHOR_LINES,
                 secondary_lines: int = SECONDARY_ANCHOR_LINES):
        self.normalizer = normalizer or ScreenNormalizer()
        self.primary_lines = primary_lines
        self.secondary_lines = secondary_lines
        self.logger = logging.getLogger(__name__)

    def diff(self, previous: Optional[NormalizedScreen], current: NormalizedScreen) -> str:
        """Return only the new, non-decorative content of `current`"""
        return self.compute(previous, current).text

    def compute(self, previous: Optional[NormalizedScreen], current: NormalizedScreen) -> DiffResult:
        if previous is None:
            self.logger.debug("No previous snapshot (first poll), returning empty")
            return DiffResult("", AnchorMatch.BASELINE)

        prev_text = previous.anchor_text
        curr_text = current.anchor_text

        if not previous.anchor_lines:
            self.logger.debug("No non-empty lines in previous snapshot to anchor on")
            return DiffResult("", AnchorMatch.BASELINE)

        if len(curr_text) == len(prev_text):
            self.logger.debug("Output length unchanged, returning empty")
            return DiffResult("", AnchorMatch.UNCHANGED)

        for size, match in ((self.primary_lines, AnchorMatch.PRIMARY),
                            (self.secondary_lines, AnchorMatch.SECONDARY)):
            anchor = '\n'.join(previous.anchor_lines[-min(size, len(previous.anchor_lines)):])
            position = curr_text.find(anchor)
            if position >= 0:
                raw_delta = curr_text[position + len(anchor):]
                filtered = self.normalizer.filter_content(raw_delta)
                self.logger.debug(
                    f"{match} anchor ({size} lines, {len(anchor)} chars) found at {position}; "
                    f"raw diff {len(raw_delta)} chars, filtered {len(filtered)} chars"
                )
                return DiffResult(filtered, match, position)
            self.logger.debug(f"{match} anchor ({size} lines) not found")

        if len(curr_text) < len(prev_text):
            self.logger.info(
                f"📺 Output shrank {len(prev_text)} → {len(curr_text)} chars with no anchor, "
                f"reporting screen clear"
            )
            return DiffResult(SCREEN_CLEARED_NOTICE, AnchorMatch.SCREEN_CLEARED)

        self.logger.debug("No anchor found even with small anchor, returning empty for safety")
        return DiffResult("", AnchorMatch.NO_ANCHOR)
