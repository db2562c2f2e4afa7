# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Allow `python -m redir.cli` (used by daemon --spawn)."""

from redir.cli import main

main()
