import asyncio
import datetime as dt
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from carpool.errors import BackendError, InvalidQuantity, MissingField, ValidationFailed, WriteFailed
from carpool.models.ride_model import Ride
from carpool.navigation import Destination
from carpool.screens.base import Screen

logger = logging.getLogger(__name__)

DATE_FORMAT = "%b %d, %Y"
TIME_FORMAT = "%I:%M %p"

# Plain ASCII numbers only; seats must fit a 32-bit int.
SEATS_PATTERN = re.compile(r"[+-]?[0-9]+")
PRICE_PATTERN = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")
MAX_SEATS = 2**31 - 1


def format_ride_date(day: dt.date) -> str:
    return day.strftime(DATE_FORMAT)


def format_ride_time(moment: dt.time) -> str:
    return moment.strftime(TIME_FORMAT)


class SubmitState(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    DONE = "done"


@dataclass
class RideForm:
    from_location: str = ""
    to_location: str = ""
    date: str = ""
    time: str = ""
    seats: str = ""
    price: str = ""


@dataclass(frozen=True)
class RideDraft:
    from_location: str
    to_location: str
    date: str
    time: str
    seats: int
    price: float


def _parse_seats(raw: str) -> Optional[int]:
    if not SEATS_PATTERN.fullmatch(raw):
        return None
    value = int(raw)
    return value if abs(value) <= MAX_SEATS else None


def _parse_price(raw: str) -> Optional[float]:
    if not PRICE_PATTERN.fullmatch(raw):
        return None
    value = float(raw)
    return value if math.isfinite(value) else None


def validate_ride_form(form: RideForm) -> RideDraft:
    """Check the form in display order and stop at the first problem."""
    from_location = (form.from_location or "").strip()
    to_location = (form.to_location or "").strip()
    seats_raw = (form.seats or "").strip()
    price_raw = (form.price or "").strip()

    if not from_location:
        raise MissingField("from", "Required")
    if not to_location:
        raise MissingField("to", "Required")
    if not form.date:
        raise MissingField("date", "Please select a date")
    if not form.time:
        raise MissingField("time", "Please select a time")
    if not seats_raw:
        raise MissingField("seats", "Required")
    if not price_raw:
        raise MissingField("price", "Required")

    seats = _parse_seats(seats_raw)
    if seats is None or seats <= 0:
        raise InvalidQuantity("seats", "Must be greater than 0")
    price = _parse_price(price_raw)
    if price is None or price <= 0:
        raise InvalidQuantity("price", "Must be greater than 0")

    return RideDraft(
        from_location=from_location,
        to_location=to_location,
        date=form.date,
        time=form.time,
        seats=seats,
        price=price,
    )


class CreateRideScreen(Screen):
    destination = Destination.CREATE
    title = "Create Ride"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.form = RideForm()
        self.state = SubmitState.IDLE
        self.field_errors: dict[str, str] = {}
        self.error: Optional[WriteFailed] = None
        self.ride: Optional[Ride] = None

    @property
    def submit_enabled(self) -> bool:
        return self.state is SubmitState.IDLE

    def to_view(self) -> dict:
        return {
            "title": self.title,
            "submit_label": self.submit_label,
            "submit_enabled": self.submit_enabled,
        }

    @property
    def submit_label(self) -> str:
        return "Creating..." if self.state is SubmitState.SUBMITTING else "Create Ride"

    def select_date(self, day: dt.date, today: Optional[dt.date] = None) -> str:
        if day < (today or dt.date.today()):
            raise ValueError("Ride date cannot be in the past")
        self.form.date = format_ride_date(day)
        return self.form.date

    def select_time(self, moment: dt.time) -> str:
        self.form.time = format_ride_time(moment)
        return self.form.time

    def submit(self) -> Optional[asyncio.Task]:
        """Validate the form and start the write.

        Returns the write task, or None when a submission is already in
        flight or done. Validation errors are raised and recorded on the
        screen; nothing is written for them.
        """
        if self.state is not SubmitState.IDLE:
            logger.debug("Ignoring submit while %s", self.state.value)
            return None

        self.field_errors.clear()
        self.error = None
        try:
            draft = validate_ride_form(self.form)
        except ValidationFailed as e:
            if e.field in ("date", "time"):
                self.notify(e.message)
            else:
                self.field_errors[e.field] = e.message
            self.changed()
            raise

        ride = Ride(
            ride_id=self.backend.rides.generate_id(),
            driver_id=self.prefs.user_id,
            driver_name=self.prefs.user_name,
            from_location=draft.from_location,
            to_location=draft.to_location,
            date=draft.date,
            time=draft.time,
            available_seats=draft.seats,
            price_per_seat=draft.price,
        )

        self.state = SubmitState.SUBMITTING
        self.changed()
        task = asyncio.create_task(self._write(ride))
        task.add_done_callback(lambda t: self._write_done(ride, t))
        return task

    async def _write(self, ride: Ride) -> Ride:
        try:
            await self.backend.rides.set_value(ride.ride_id, ride.to_document())
        except BackendError as e:
            logger.warning("Ride %s was not created: %s", ride.ride_id, e)
            raise WriteFailed(str(e)) from e
        logger.info("Created ride %s (%s -> %s)", ride.ride_id, ride.from_location, ride.to_location)
        return ride

    def _write_done(self, ride: Ride, task: asyncio.Task):
        if task.cancelled():
            self.post(self._write_failed, WriteFailed("Request cancelled"))
            return
        error = task.exception()
        if error is None:
            self.post(self._write_succeeded, ride)
        else:
            self.post(self._write_failed, error)

    def _write_succeeded(self, ride: Ride):
        self.state = SubmitState.DONE
        self.ride = ride
        self.notify("Ride created successfully!")
        self.changed()
        self.finish()

    def _write_failed(self, error: Exception):
        if not isinstance(error, WriteFailed):
            error = WriteFailed(str(error))
        self.state = SubmitState.IDLE
        self.error = error
        self.notify(f"Failed to create ride: {error.message}")
        self.changed()
