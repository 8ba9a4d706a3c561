"""
Pydantic schemas for the control service REST contract.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, field_validator

from ..config import DEFAULT_ROOM, DEFAULT_SERVER


class ClientLaunch(BaseModel):
    room: str = DEFAULT_ROOM
    server: str = DEFAULT_SERVER
    caller: bool = False

    @field_validator("room", "server")
    @classmethod
    def _require_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value


class ControlStatus(BaseModel):
    commit: str = ""
    signaling_running: bool = False
    client_running: bool = False


class ProcessResult(BaseModel):
    status: str
    pid: Optional[int] = None
    returncode: Optional[int] = None
