"""Shared schema base and image reference models."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base model for wire schemas.

    Fields are snake_case in Python and camelCase on the wire. Both spellings
    are accepted on input; dump with by_alias=True for output.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class OkResponse(ApiModel):
    """Acknowledgement for mutations with no other payload."""

    ok: bool = True


class DataUrlRef(ApiModel):
    """Inline image supplied by the client.

    data_url may be a full `data:<mime>;base64,<payload>` URL or bare base64;
    everything up to and including the first comma is discarded.
    """

    kind: Literal["dataUrl"]
    data_url: str
    mime_type: str


class MediaIdRef(ApiModel):
    """Reference to a previously generated artifact owned by the requester."""

    kind: Literal["mediaId"]
    media_id: str


ImageRef = Annotated[DataUrlRef | MediaIdRef, Field(discriminator="kind")]
