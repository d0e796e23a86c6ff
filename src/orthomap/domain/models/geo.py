from pydantic import BaseModel, Field


class LatLng(BaseModel):
    lat: float = Field(description="Latitude in decimal degrees.")
    lng: float = Field(description="Longitude in decimal degrees.")


class BoundingBox(BaseModel):
    """Geographic extent of a finished raster, south-west and north-east corners."""

    south_west: LatLng = Field(description="Minimum latitude/longitude corner.")
    north_east: LatLng = Field(description="Maximum latitude/longitude corner.")

    def as_pairs(self) -> list[list[float]]:
        """Render as ``[[sw_lat, sw_lng], [ne_lat, ne_lng]]`` for map clients."""
        return [
            [self.south_west.lat, self.south_west.lng],
            [self.north_east.lat, self.north_east.lng],
        ]

    @classmethod
    def from_pairs(cls, pairs: list[list[float]]) -> "BoundingBox":
        (sw_lat, sw_lng), (ne_lat, ne_lng) = pairs
        return cls(
            south_west=LatLng(lat=sw_lat, lng=sw_lng),
            north_east=LatLng(lat=ne_lat, lng=ne_lng),
        )
