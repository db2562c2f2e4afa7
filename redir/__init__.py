# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""redir - Expose a process's stdio over a socket and attach to it."""

__version__ = "0.1.0"
