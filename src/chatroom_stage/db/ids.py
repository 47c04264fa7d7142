# src/chatroom_stage/db/ids.py
"""Opaque identifier helpers for stored records."""

import uuid


def new_object_id() -> str:
    """Return a fresh opaque identifier for a document or blob."""
    return uuid.uuid4().hex
