"""Typed ActivityStreams documents exchanged with remote servers.

Inbound payloads are parsed once at the inbox boundary into one of the
variants below; outbound activities are built from them and serialized
with ``to_wire``. Unknown fields are kept so that an activity can be
echoed back verbatim (an Accept wraps the original Follow).
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

INBOUND_TYPES = ("Create", "Follow", "Undo")


class APObject(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    jsonld_context: Optional[Any] = Field(default=None, alias="@context")
    id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Hashtag(APObject):
    type: Literal["Hashtag"] = "Hashtag"
    name: str
    url: Optional[str] = None


class Note(APObject):
    type: Literal["Note"] = "Note"
    attributedTo: Optional[str] = None
    content: Optional[str] = None
    context: Optional[str] = None
    conversation: Optional[str] = None
    published: Optional[str] = None
    summary: Optional[str] = None
    to: Optional[Union[str, List[str]]] = None
    cc: Optional[Union[str, List[str]]] = None
    url: Optional[str] = None
    tag: Optional[List[Hashtag]] = None


class Activity(APObject):
    actor: str
    object: Optional[Any] = None
    published: Optional[str] = None
    to: Optional[Union[str, List[str]]] = None
    cc: Optional[Union[str, List[str]]] = None


class Create(Activity):
    type: Literal["Create"] = "Create"


class Update(Activity):
    type: Literal["Update"] = "Update"


class Follow(Activity):
    type: Literal["Follow"] = "Follow"

    @property
    def target(self) -> Optional[str]:
        """The followed IRI, when given as a plain string."""
        return self.object if isinstance(self.object, str) else None


class Undo(Activity):
    type: Literal["Undo"] = "Undo"

    @property
    def undoes_follow(self) -> bool:
        return isinstance(self.object, dict) and self.object.get("type") == "Follow"


class Accept(Activity):
    type: Literal["Accept"] = "Accept"
    object: Follow


class OrderedCollection(APObject):
    type: Literal["OrderedCollection"] = "OrderedCollection"
    totalItems: int = 0
    orderedItems: List[Any] = Field(default_factory=list)


InboundActivity = Annotated[Union[Create, Follow, Undo], Field(discriminator="type")]

_inbound_adapter = TypeAdapter(InboundActivity)


def parse_inbound(document: Dict[str, Any]) -> Union[Create, Follow, Undo]:
    """Parse an inbox document; raises pydantic.ValidationError on bad shape."""
    return _inbound_adapter.validate_python(document)
