#!/usr/bin/env python3
"""
Configuration Module for tmux-chat-bridge

This module handles loading and managing the terminal monitor configuration
from environment variables with sensible defaults for all settings.
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv
from typing import List, Optional, Tuple


class Config:
    """Configuration manager for the terminal session monitor"""

    LOG_FILE_NAME = "bridge.log"

    DEFAULT_POLL_STEPS = "60:5,300:10,1800:30"

    def __init__(self):
        # Load environment variables from .env file if it exists
        load_dotenv()

        # Cache loaded values
        self._poll_steps: Optional[List[Tuple[float, float]]] = None

    def _read_number(self, name: str, default: float, minimum: float, maximum: float) -> float:
        """Read a numeric environment variable, clamping it to [minimum, maximum]"""
        raw = os.getenv(name)
        if raw is None or raw == "":
            return default
        try:
            value = float(raw)
        except ValueError:
            print(f"WARNING: Invalid {name} value '{raw}', using default of {default}")
            return default

        if value < minimum:
            print(f"WARNING: {name} ({value}) is too low, using minimum of {minimum}")
            return minimum
        if value > maximum:
            print(f"WARNING: {name} ({value}) is very high, using maximum of {maximum}")
            return maximum
        return value

    @property
    def log_dir(self) -> Path:
        """Directory for the bridge log file"""
        return Path(os.getenv('LOG_DIR', 'logs'))

    @property
    def debug(self) -> bool:
        """Whether verbose per-poll diagnostics are enabled"""
        return os.getenv('DEBUG', 'false').lower() in ('1', 'true', 'yes')

    @property
    def poll_steps(self) -> List[Tuple[float, float]]:
        """Adaptive poll steps as (elapsed_below_seconds, interval_seconds) pairs"""
        if self._poll_steps is None:
            raw = os.getenv('POLL_STEPS', self.DEFAULT_POLL_STEPS)
            try:
                self._poll_steps = self.parse_poll_steps(raw)
            except ValueError:
                print(f"WARNING: Invalid POLL_STEPS value '{raw}', using default of {self.DEFAULT_POLL_STEPS}")
                self._poll_steps = self.parse_poll_steps(self.DEFAULT_POLL_STEPS)
        return self._poll_steps

    @staticmethod
    def parse_poll_steps(raw: str) -> List[Tuple[float, float]]:
        """Parse "60:5,300:10" into [(60.0, 5.0), (300.0, 10.0)] sorted by threshold"""
        steps = []
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            threshold, interval = part.split(":")
            threshold_value, interval_value = float(threshold), float(interval)
            if threshold_value <= 0 or interval_value <= 0:
                raise ValueError(f"Poll step must be positive: {part}")
            steps.append((threshold_value, interval_value))
        if not steps:
            raise ValueError("No poll steps given")
        return sorted(steps)

    @property
    def poll_max_interval(self) -> float:
        """Upper bound for the adaptive poll interval in seconds"""
        return self._read_number('POLL_MAX_INTERVAL', 60.0, 1.0, 600.0)

    @property
    def stability_interval(self) -> float:
        """Seconds between captures while waiting for the screen to settle"""
        return self._read_number('STABILITY_INTERVAL', 1.0, 0.1, 10.0)

    @property
    def stability_window(self) -> int:
        """Consecutive identical captures required before completion"""
        return int(self._read_number('STABILITY_WINDOW', 3, 2, 20))

    @property
    def status_update_interval(self) -> float:
        """Seconds between in-place status message refreshes"""
        return self._read_number('STATUS_UPDATE_INTERVAL', 30.0, 5.0, 600.0)

    @property
    def takeover_grace_seconds(self) -> float:
        """How long a new execution waits for a retired one to exit"""
        return self._read_number('TAKEOVER_GRACE_SECONDS', 2.0, 0.0, 30.0)

    @property
    def max_chunk_length(self) -> int:
        """Maximum characters per content message"""
        return int(self._read_number('MAX_CHUNK_LENGTH', 2500, 200, 39000))

    @property
    def capture_history_lines(self) -> int:
        """Scrollback lines included in every capture"""
        return int(self._read_number('CAPTURE_HISTORY_LINES', 2000, 0, 100000))

    @property
    def idle_rule(self) -> str:
        """Which idle predicate to use: "banner" or "prompt" """
        rule = os.getenv('IDLE_RULE', 'banner').strip().lower()
        if rule not in ('banner', 'prompt'):
            print(f"WARNING: Invalid IDLE_RULE value '{rule}', using default of 'banner'")
            return 'banner'
        return rule

    @property
    def busy_banners(self) -> List[str]:
        """Phrases whose presence means the driven program is still working"""
        raw = os.getenv('BUSY_BANNERS', 'esc to interrupt')
        return [phrase.strip() for phrase in raw.split(",") if phrase.strip()]

    def monitor_config(self):
        """Build the MonitorConfig used by TerminalMonitor"""
        from session_monitor.terminal_monitor import MonitorConfig

        return MonitorConfig(
            poll_steps=self.poll_steps,
            poll_max_interval=self.poll_max_interval,
            stability_interval=self.stability_interval,
            stability_window=self.stability_window,
            status_update_interval=self.status_update_interval,
            takeover_grace_seconds=self.takeover_grace_seconds,
            max_chunk_length=self.max_chunk_length,
            idle_rule=self.idle_rule,
            busy_banners=self.busy_banners,
        )

    def setup_logging(self, level: Optional[str] = None):
        """Setup file and console logging"""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        if level is None:
            level = "DEBUG" if self.debug else "INFO"
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(self.log_dir / self.LOG_FILE_NAME),
                logging.StreamHandler()
            ]
        )
        logging.getLogger(__name__).info("🚀 Logging initialized")


# Global configuration instance
config = Config()
