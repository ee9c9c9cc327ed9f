"""
CLI Commands Package
"""

from .heal_log import cmd_heal_log
from .lessons import cmd_lessons
from .patterns import cmd_patterns
from .state import cmd_state

__all__ = [
    "cmd_heal_log",
    "cmd_lessons",
    "cmd_patterns",
    "cmd_state",
]
