"""
Shared Pydantic models for the playlist and dataset routers
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class RangeInfoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_date: Optional[str] = Field(default=None, alias="from")
    to_date: Optional[str] = Field(default=None, alias="to")
    # Optional dataset; all four or none
    satellite: Optional[str] = None
    sector: Optional[str] = None
    product: Optional[str] = None
    resolution: Optional[str] = None


class RangeInfoResponse(BaseModel):
    availableDays: int
    totalSegments: int
    estimatedDurationSeconds: int
    estimatedDurationFormatted: str


class DayPlaylist(BaseModel):
    satellite: str
    sector: str
    product: str
    resolution: str
    date: str
    playlist_url: str
    segments: int
    duration: int
    file_size: int
