#!/usr/bin/env python3
"""
Screen Normalizer
=================
Turns a raw tmux capture into plain text and separates substantive content
from terminal chrome (spinners, status bars, rules, progress bars, empty
input prompts).

Interactive CLIs repaint their chrome on every frame, so anything used to
line up two captures has to be computed after the chrome is gone.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

ANSI_ESCAPE = re.compile(r'''
    \x1B  # ESC
    (?:   # 7-bit C1 Fe
        [@-Z\\-_]
    |     # or [ for CSI
        \[
        [0-?]*  # Parameter bytes
        [ -/]*  # Intermediate bytes
        [@-~]   # Final byte
    )
''', re.VERBOSE)

# OSC sequences (window titles, hyperlinks) end with BEL or ST
OSC_SEQUENCE = re.compile(r'\x1B\][^\x07\x1B]*(?:\x07|\x1B\\)')


@dataclass
class DecorationRules:
    """Policy describing which lines are chrome for the driven program's UI"""
    # Lines starting with one of these glyphs are processing indicators
    processing_glyphs: Tuple[str, ...] = ('✢', '✳', '✶', '✻', '✽', '∴')
    # Lines starting with one of these are status-bar rows
    status_prefixes: Tuple[str, ...] = ('⏵',)
    status_phrases: Tuple[str, ...] = (
        'esc to interrupt',
        'bypass permissions on',
        'accept edits on',
        'plan mode on',
        '? for shortcuts',
        'globalVersion',
        'latestVersion',
    )
    spinner_pattern: re.Pattern = field(
        default_factory=lambda: re.compile(r'^[·•*+]\s+\w[\w\s-]*…'))
    token_pattern: re.Pattern = field(
        default_factory=lambda: re.compile(r'^[\W_]*[\d,.]+\s*k?\s+tokens?\b', re.IGNORECASE))
    progress_pattern: re.Pattern = field(
        default_factory=lambda: re.compile(r'^[\[(]?[\s█▉▊▋▌▍▎▏▓▒░■□#=>.\-]*[\])]?\s*\d{1,3}(?:\.\d+)?%$'))
    box_pattern: re.Pattern = field(
        default_factory=lambda: re.compile(r'^[─━═│┃┄┅┈┉╌╍┌┐└┘├┤┬┴┼╭╮╯╰╔╗╚╝╠╣╦╩╬░▒▓█▀▄■▌▐\s]+$'))
    ascii_rule_pattern: re.Pattern = field(
        default_factory=lambda: re.compile(r'^[-=_~]{3,}$'))
    empty_prompt_pattern: re.Pattern = field(
        default_factory=lambda: re.compile(r'^[│┃|]?\s*[>❯›]\s*[│┃|]?$'))

    def is_rule(self, stripped: str) -> bool:
        """True for divider lines made only of rule/box characters"""
        return bool(self.box_pattern.match(stripped) or self.ascii_rule_pattern.match(stripped))

    def is_empty_prompt(self, stripped: str) -> bool:
        return bool(self.empty_prompt_pattern.match(stripped))

    def is_status_bar(self, stripped: str) -> bool:
        if stripped.startswith(self.status_prefixes):
            return True
        if any(phrase in stripped for phrase in self.status_phrases):
            return True
        return bool(self.token_pattern.match(stripped))

    def is_processing(self, stripped: str) -> bool:
        if stripped.startswith(self.processing_glyphs):
            return True
        return bool(self.spinner_pattern.match(stripped))

    def is_decorative(self, line: str) -> bool:
        stripped = line.strip()
        if not stripped:
            return False
        return (
            self.is_processing(stripped)
            or self.is_status_bar(stripped)
            or self.is_rule(stripped)
            or self.is_empty_prompt(stripped)
            or bool(self.progress_pattern.match(stripped))
        )


@dataclass
class NormalizedScreen:
    """One screen snapshot in raw and normalized forms"""
    raw: str
    plain: str
    lines: List[str]  # decorative lines removed, blank lines kept
    anchor_lines: List[str]  # decorative and blank lines removed

    @property
    def anchor_text(self) -> str:
        return '\n'.join(self.anchor_lines)

    @property
    def content(self) -> str:
        """User-facing text of the whole snapshot"""
        return '\n'.join(self.lines).strip('\n')


class ScreenNormalizer:
    """Strips control sequences and classifies chrome lines"""

    def __init__(self, rules: Optional[DecorationRules] = None):
        self.rules = rules or DecorationRules()

    @staticmethod
    def strip_control_sequences(text: str) -> str:
        """Clean terminal output by removing ANSI escape codes"""
        if not text:
            return ""

        text = OSC_SEQUENCE.sub('', text)
        text = ANSI_ESCAPE.sub('', text)
        text = re.sub(r'\x1b\[[0-9;]*[mGKHJF]', '', text)
        text = re.sub(r'\x1b\[[\?0-9]*[hl]', '', text)
        text = re.sub(r'\x07|\r', '', text)

        # Keep only printable characters plus newline/tab
        text = ''.join(c for c in text if c.isprintable() or c in '\n\t' or ord(c) >= 0x2500)

        return text

    def is_decorative(self, line: str) -> bool:
        return self.rules.is_decorative(line)

    def normalize(self, raw: str) -> NormalizedScreen:
        plain = self.strip_control_sequences(raw or "")
        lines = [line.rstrip() for line in plain.split('\n')]
        kept = [line for line in lines if not self.rules.is_decorative(line)]
        return NormalizedScreen(
            raw=raw or "",
            plain=plain,
            lines=kept,
            anchor_lines=[line for line in kept if line.strip()],
        )

    def filter_content(self, text: str) -> str:
        """Drop decorative and blank lines from an extracted delta"""
        kept = [
            line.rstrip() for line in text.split('\n')
            if line.strip() and not self.rules.is_decorative(line)
        ]
        return '\n'.join(kept)
