"""
Session Model
=============

Identity of one recording run.

A session is created once at startup and never mutated. Its identifier
is shared with the analysis engine (sent as the first outbound line)
and names the multi-frame store on disk.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from imaging_handshake.config import SessionConfig


class Session(BaseModel):
    """
    One end-to-end recording run.

    Attributes:
        session_id: Generated or demo identifier
        created_at: Creation timestamp
        storage_path: Multi-frame store for this session
    """

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(..., min_length=1, description="Session/file identifier")
    created_at: datetime = Field(..., description="Creation timestamp")
    storage_path: Path = Field(..., description="Target multi-frame store")


def create_session(
    config: SessionConfig,
    now: Optional[datetime] = None,
) -> Session:
    """
    Create the session for this run.

    In demo mode the identifier is the configured demo name, so the
    analysis engine can be pointed at a known file. Otherwise it is
    derived from the creation time.

    Args:
        config: Session configuration section
        now: Creation time (defaults to datetime.now())

    Returns:
        Session: Immutable session identity
    """
    if now is None:
        now = datetime.now()

    if config.demo_mode:
        session_id = config.demo_name
    else:
        session_id = now.strftime(config.id_format)

    storage_path = Path(config.storage_prefix) / f"{session_id}{config.store_suffix}"

    return Session(
        session_id=session_id,
        created_at=now,
        storage_path=storage_path,
    )
