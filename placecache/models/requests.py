from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any


class LatLng(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationRectangle(BaseModel):
    """Search bounding box, serialized as a locationRestriction rectangle"""
    low: LatLng
    high: LatLng

    def to_restriction(self) -> Dict[str, Any]:
        return {"rectangle": {"low": self.low.model_dump(), "high": self.high.model_dump()}}


class PlaceQuery(BaseModel):
    """Text search sent to the origin"""
    text_query: str = Field(..., min_length=1, max_length=500)
    location: Optional[LocationRectangle] = None
    language_code: Optional[str] = Field(None, max_length=10)
    max_result_count: Optional[int] = Field(None, ge=1, le=20)

    @field_validator('text_query')
    @classmethod
    def validate_text_query(cls, v):
        v = ' '.join(v.split())
        if not v:
            raise ValueError("text_query must not be blank")
        return v

    def to_body(self, default_language: str, default_max_results: int) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "textQuery": self.text_query,
            "languageCode": self.language_code or default_language,
            "maxResultCount": self.max_result_count or default_max_results,
        }
        if self.location:
            body["locationRestriction"] = self.location.to_restriction()
        return body
