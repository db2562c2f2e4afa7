# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT

"""Pydantic model for ~/.config/redir/config.yml."""

import codecs
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RedirConfigModel(BaseModel):
    """User configuration.

    buffer_size:   Chunk size for socket reads in the bridge
    encoding:      Single-byte codec used to render bridged bytes in debug logs
    poll_interval: Seconds between liveness checks of sockets and the process
    drain_timeout: Seconds to wait for final process output after it exits
    """

    model_config = ConfigDict(extra="ignore")

    buffer_size: int = Field(default=1024, gt=0)
    encoding: str = "latin-1"
    poll_interval: float = Field(default=0.5, gt=0)
    drain_timeout: float = Field(default=2.0, ge=0)
    log_level: Optional[str] = None

    @field_validator("encoding")
    @classmethod
    def validate_single_byte(cls, value: str) -> str:
        """Only accept codecs that map every character to exactly one byte."""
        try:
            codec = codecs.lookup(value)
        except LookupError:
            raise ValueError(f"Unknown encoding: {value}")
        if len("é".encode(codec.name, errors="replace")) != 1:
            raise ValueError(f"Encoding is not single-byte: {value}")
        return codec.name

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        upper = value.upper()
        if upper not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {value}")
        return upper
