"""
hostscale CLI Module

Command line interface for deployment detection, scaling and managed databases.
"""

from .main import app, main
from .utils import (
    console,
    get_services,
    set_services,
    print_success,
    print_error,
    print_info,
    print_warning,
    print_notifications,
)

__all__ = [
    "app",
    "main",
    "console",
    "get_services",
    "set_services",
    "print_success",
    "print_error",
    "print_info",
    "print_warning",
    "print_notifications",
]
