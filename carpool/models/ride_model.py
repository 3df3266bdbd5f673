from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    RIDER = "rider"
    DRIVER = "driver"

    @property
    def filter_field(self) -> str:
        return "riderId" if self is Role.RIDER else "driverId"


class Ride(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ride_id: str = Field(..., alias="rideId", min_length=1)
    driver_id: Optional[str] = Field(None, alias="driverId")
    driver_name: Optional[str] = Field(None, alias="driverName")
    from_location: str = Field(..., alias="from")
    to_location: str = Field(..., alias="to")
    # Reserved: no location picker fills these yet.
    from_lat: float = Field(0.0, alias="fromLat")
    from_lng: float = Field(0.0, alias="fromLng")
    to_lat: float = Field(0.0, alias="toLat")
    to_lng: float = Field(0.0, alias="toLng")
    date: str
    time: str
    available_seats: int = Field(..., alias="availableSeats", gt=0)
    price_per_seat: float = Field(..., alias="pricePerSeat", gt=0)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class Booking(BaseModel):
    """A booking as stored by the backend. Keys this client does not know are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    booking_id: str = Field(..., alias="bookingId")
    rider_id: Optional[str] = Field(None, alias="riderId")
    driver_id: Optional[str] = Field(None, alias="driverId")

    @classmethod
    def from_document(cls, doc: dict) -> "Booking":
        data = dict(doc)
        key = data.pop("_id", None)
        if key is not None:
            data["bookingId"] = str(key)
        return cls.model_validate(data)

    def to_view(self) -> dict:
        return self.model_dump(by_alias=True)
