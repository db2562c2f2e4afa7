# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for redir configuration."""

from redir.models.config import RedirConfigModel

__all__ = ["RedirConfigModel"]
