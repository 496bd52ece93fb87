from enum import Enum
from typing import Iterable, Optional
from roombook.config import BIG_EVENT_TAGS, BIG_EVENT_BLOCK_TAG


class EventCategory(str, Enum):
    STANDARD = "standard"
    BIG_EVENT = "big_event"
    LOCKOUT = "lockout"


def classify(tags: Optional[Iterable[str]]) -> EventCategory:
    """
    Resolve a tag set into the category the booking rules work with.

    Lockout placeholders carry the system block tag and win over everything
    else; any of the organization-wide Big Event tags makes a Big Event.
    """
    tag_set = set(tags or ())
    if BIG_EVENT_BLOCK_TAG in tag_set:
        return EventCategory.LOCKOUT
    if tag_set.intersection(BIG_EVENT_TAGS):
        return EventCategory.BIG_EVENT
    return EventCategory.STANDARD
