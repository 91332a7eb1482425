"""
Event channel wire models
Inbound events are validated with pydantic before they reach the orchestrator
"""

import logging
from typing import Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


logger = logging.getLogger(__name__)

DELETE_ALL = "delete-all"


class DeleteAllCommand(BaseModel):
    category: str


class ProgressEvent(BaseModel):
    category: str
    deleted: int = Field(ge=0)


class CompleteEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str
    total_deleted: int = Field(alias="totalDeleted", ge=0)


class ErrorEvent(BaseModel):
    category: str
    message: str = "Unknown error"


InboundEvent = Union[ProgressEvent, CompleteEvent, ErrorEvent]

EVENT_TYPES: Dict[str, Type[BaseModel]] = {
    "progress": ProgressEvent,
    "complete": CompleteEvent,
    "error": ErrorEvent,
}


def parse_event(name: str, data) -> Optional[InboundEvent]:
    """Validate a raw channel payload, returns None if it is unknown or malformed"""
    model = EVENT_TYPES.get(name)
    if model is None:
        logger.debug(f"Ignoring unknown channel event: {name}")
        return None

    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Dropping malformed '{name}' event {data!r}: {e.error_count()} validation error(s)")
        return None
