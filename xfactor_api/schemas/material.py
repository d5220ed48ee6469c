"""Support material schemas (tagged union on ``type``)."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class LinkMaterial(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["link"]
    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=2048)
    created_at: Optional[str] = None


class FileMaterial(BaseModel):
    """PDF material. ``storageRef`` is the private object name and never leaves the backend."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["file"]
    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=255)
    fileName: str = Field(min_length=1, max_length=255)
    fileSize: Optional[int] = Field(default=None, ge=0)
    fileType: Optional[str] = None
    storageRef: Optional[str] = None
    created_at: Optional[str] = None


Material = Annotated[Union[LinkMaterial, FileMaterial], Field(discriminator="type")]

materials_adapter = TypeAdapter(list[Material])


class SignedUrlRequest(BaseModel):
    storageRef: str = Field(min_length=1, max_length=1024)
    expiresInHours: Optional[float] = Field(default=None, gt=0, le=24 * 7)
