"""
ClimbApp Backend — Image Recognition Target Schemas
===================================================

What:  Vendor-neutral view of the Product Search catalog.
How:   ImageRecognitionService maps google.cloud.vision messages into these
       models; nothing outside that service sees a protobuf type.

Vocabulary:
    Target          ↔ vision Product
    Target set      ↔ vision ProductSet
    ReferenceImage  ↔ vision ReferenceImage (binary stored in Cloud Storage)
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from climbapp.schemas.common import ImageData


class ReferenceImage(BaseModel):
    """A reference photo registered for a target."""
    id: str = Field(description="Reference image id")
    uri: str = Field(description="gs:// URI of the image binary")


class Target(BaseModel):
    """A recognizable product with its labels and reference images."""
    id: str = Field(description="Product id")
    display_name: str = ""
    description: str = ""
    category: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    reference_images: List[ReferenceImage] = Field(default_factory=list)


class TargetSearchResultEntry(BaseModel):
    """One similar-product hit."""
    score: float = Field(description="Confidence in [0, 1]")
    image: str = Field(default="", description="Resource name of the matched reference image")
    target: Target


class TargetSearchResults(BaseModel):
    """Result of a similar-product search; empty when nothing was found."""
    results: List[TargetSearchResultEntry] = Field(default_factory=list)


class CreateTargetSetRequest(BaseModel):
    """Body of POST /api/v1/target-sets."""
    id: str = Field(min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_-]+$")
    display_name: str = Field(min_length=1, max_length=4096)


class CreateTargetRequest(BaseModel):
    """Body of POST /api/v1/targets."""
    display_name: str = Field(min_length=1, max_length=4096)
    description: Optional[str] = Field(default=None, max_length=4096)
    labels: Dict[str, str] = Field(default_factory=dict)
    image: ImageData


class TargetSearchRequest(BaseModel):
    """Body of POST /api/v1/targets/search."""
    image: ImageData
