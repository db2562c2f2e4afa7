# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared helpers for the redir CLI commands."""

from redir.cli.helpers.utils import (
    buffer_option,
    handle_errors,
    show_error_panel,
)

__all__ = [
    "buffer_option",
    "handle_errors",
    "show_error_panel",
]
