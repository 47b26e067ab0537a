from dataclasses import dataclass, field
from datetime import datetime
from typing import List

@dataclass(frozen=True)
class ContentItem:
    """A published link as seen by the federation core (read-only)."""
    id: int
    url: str
    title: str
    summary: str  # rendered HTML
    posted: datetime
    tags: List[str] = field(default_factory=list)
    source: str = ""
    site: str = ""
