"""Shared pydantic configuration for the project model.

Fields are declared in snake_case and serialized with camelCase aliases
so exported documents and the UI layer see ``maxSpeed``, ``ioConfigs``,
``stationId`` and friends.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ConfigModel(BaseModel):
    """Base for every entity in the project graph."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def generate_id() -> str:
    """Opaque client-side identifier; never assigned by the backing store."""
    return uuid.uuid4().hex[:12]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
