"""
Terminal session monitoring: screen normalization, anchor diffing,
completion detection and chat output dispatch.
"""

from .anchor_diff import SCREEN_CLEARED_NOTICE, AnchorDiffEngine, AnchorMatch, DiffResult
from .completion_detector import (
    BannerIdlePolicy,
    CompletionDetector,
    CompletionState,
    IdlePolicy,
    PromptIdlePolicy,
    build_idle_policy,
)
from .execution_store import Destination, ExecutionContext, ExecutionStore, execution_key
from .output_dispatcher import OutputDispatcher, format_duration, split_output
from .poll_scheduler import PollScheduler
from .screen_normalizer import DecorationRules, NormalizedScreen, ScreenNormalizer
from .terminal_monitor import ExecutionResult, MonitorConfig, TerminalMonitor
from .transport import ChatTransport

__all__ = [
    'SCREEN_CLEARED_NOTICE',
    'AnchorDiffEngine',
    'AnchorMatch',
    'DiffResult',
    'BannerIdlePolicy',
    'CompletionDetector',
    'CompletionState',
    'IdlePolicy',
    'PromptIdlePolicy',
    'build_idle_policy',
    'Destination',
    'ExecutionContext',
    'ExecutionStore',
    'execution_key',
    'OutputDispatcher',
    'format_duration',
    'split_output',
    'PollScheduler',
    'DecorationRules',
    'NormalizedScreen',
    'ScreenNormalizer',
    'ExecutionResult',
    'MonitorConfig',
    'TerminalMonitor',
    'ChatTransport',
]
