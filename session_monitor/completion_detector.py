#!/usr/bin/env python3
"""
Completion Detector
===================
Decides when the driven program has finished responding.

An idle-looking screen is not trusted on a single observation: it has to be
seen idle twice in a row (COMPLETION_CANDIDATE -> STABILIZING) and then the
raw capture has to stop changing for a whole stability window before DONE
is reported.
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional

from .screen_normalizer import DecorationRules, NormalizedScreen

# Lines inspected for spinners by the prompt rule
PROMPT_SPINNER_WINDOW = 20
# How far above the prompt a rule line may sit
PROMPT_RULE_WINDOW = 10


class CompletionState(Enum):
    """Where an execution is in the completion debounce"""
    RUNNING = "running"
    COMPLETION_CANDIDATE = "completion_candidate"
    STABILIZING = "stabilizing"
    DONE = "done"


class IdlePolicy:
    """Base class for idle predicates over a normalized screen"""
    name = "base"

    def is_idle(self, screen: NormalizedScreen) -> bool:
        raise NotImplementedError


class BannerIdlePolicy(IdlePolicy):
    """Idle when no busy banner is shown anywhere on the screen.

    Interactive assistants print an interrupt hint ("esc to interrupt") for
    as long as they are working, so its absence is a cheap readiness signal.
    """
    name = "banner"

    def __init__(self, busy_banners: Optional[Iterable[str]] = None):
        self.busy_banners: List[str] = list(busy_banners or ["esc to interrupt"])

    def is_idle(self, screen: NormalizedScreen) -> bool:
        return not any(banner in screen.plain for banner in self.busy_banners)


class PromptIdlePolicy(IdlePolicy):
    """Idle when an empty input prompt sits under a divider and nothing spins"""
    name = "prompt"

    def __init__(self, rules: Optional[DecorationRules] = None):
        self.rules = rules or DecorationRules()

    def is_idle(self, screen: NormalizedScreen) -> bool:
        lines = screen.plain.split('\n')

        for line in lines[-PROMPT_SPINNER_WINDOW:]:
            stripped = line.strip()
            if stripped and self.rules.is_processing(stripped):
                return False

        prompt_index = None
        for index in range(len(lines) - 1, -1, -1):
            stripped = lines[index].strip()
            if not stripped or self.rules.is_rule(stripped) or self.rules.is_status_bar(stripped):
                continue
            if self.rules.is_empty_prompt(stripped):
                prompt_index = index
            break

        if prompt_index is None:
            return False

        above = lines[max(0, prompt_index - PROMPT_RULE_WINDOW):prompt_index]
        return any(self.rules.is_rule(line.strip()) for line in above if line.strip())


def build_idle_policy(rule: str, busy_banners: Optional[Iterable[str]] = None,
                      rules: Optional[DecorationRules] = None) -> IdlePolicy:
    """Create the idle policy named by the IDLE_RULE setting"""
    if rule == "prompt":
        return PromptIdlePolicy(rules)
    if rule == "banner":
        return BannerIdlePolicy(busy_banners)
    raise ValueError(f"Unknown idle rule: {rule}")


class CompletionDetector:
    """State machine turning per-poll idle observations into a single DONE"""

    def __init__(self, policy: Optional[IdlePolicy] = None, stability_window: int = 3):
        if stability_window < 1:
            raise ValueError("stability_window must be at least 1")
        self.policy = policy or BannerIdlePolicy()
        self.stability_window = stability_window
        self.state = CompletionState.RUNNING
        self._last_stable_capture: Optional[str] = None
        self._stable_count = 0
        self._done_reported = False
        self.logger = logging.getLogger(__name__)

    def reset(self):
        """Return to RUNNING and forget any stabilization progress"""
        self.state = CompletionState.RUNNING
        self._last_stable_capture = None
        self._stable_count = 0
        self._done_reported = False

    @property
    def stable_count(self) -> int:
        return self._stable_count

    def observe(self, screen: NormalizedScreen) -> CompletionState:
        """Feed one regular poll and advance the debounce"""
        if self.state in (CompletionState.STABILIZING, CompletionState.DONE):
            return self.state

        idle = self.policy.is_idle(screen)
        previous = self.state

        if self.state == CompletionState.RUNNING:
            if idle:
                self.state = CompletionState.COMPLETION_CANDIDATE
        elif self.state == CompletionState.COMPLETION_CANDIDATE:
            if idle:
                self.state = CompletionState.STABILIZING
                self._last_stable_capture = None
                self._stable_count = 0
            else:
                self.state = CompletionState.RUNNING

        if previous != self.state:
            self.logger.debug(f"Completion state {previous.value} -> {self.state.value} (idle={idle})")
        return self.state

    def observe_stable_capture(self, raw: str) -> bool:
        """Feed one stabilization capture; True exactly once, when DONE is reached"""
        if self.state != CompletionState.STABILIZING:
            return False

        if raw == self._last_stable_capture:
            self._stable_count += 1
        else:
            if self._last_stable_capture is not None:
                self.logger.debug(f"Screen changed during stabilization after {self._stable_count} identical captures")
            self._last_stable_capture = raw
            self._stable_count = 1

        if self._stable_count >= self.stability_window and not self._done_reported:
            self.state = CompletionState.DONE
            self._done_reported = True
            self.logger.debug(f"Screen stable for {self._stable_count} captures, completion confirmed")
            return True
        return False
