import asyncio
import datetime as dt

import pytest

from carpool.errors import InvalidQuantity, MissingField, WriteFailed
from carpool.screens.create_ride import CreateRideScreen, SubmitState


def _fill(screen, **overrides):
    screen.form.from_location = overrides.get("from_location", "Downtown")
    screen.form.to_location = overrides.get("to_location", "Airport")
    screen.form.date = overrides.get("date", "Oct 21, 2026")
    screen.form.time = overrides.get("time", "08:30 AM")
    screen.form.seats = overrides.get("seats", "5")
    screen.form.price = overrides.get("price", "12.50")


def test_successful_submit_writes_once_and_closes(backend, prefs):
    async def scenario():
        screen = CreateRideScreen(backend, prefs)
        screen.start()
        screen.resume()
        _fill(screen)

        task = screen.submit()
        assert screen.state is SubmitState.SUBMITTING
        assert screen.submit_enabled is False
        assert screen.submit_label == "Creating..."

        ride = await task
        await screen.settle()
        return screen, ride

    screen, ride = asyncio.run(scenario())

    assert len(backend.rides.writes) == 1
    key, doc = backend.rides.writes[0]
    assert key
    assert doc["rideId"] == key == ride.ride_id
    assert doc["driverId"] == "u1"
    assert doc["driverName"] == "Ana"
    assert doc["from"] == "Downtown"
    assert doc["availableSeats"] == 5
    assert doc["pricePerSeat"] == 12.5
    assert (doc["fromLat"], doc["fromLng"], doc["toLat"], doc["toLng"]) == (0.0, 0.0, 0.0, 0.0)
    assert screen.state is SubmitState.DONE
    assert screen.notices == ["Ride created successfully!"]
    assert screen.running is False


@pytest.mark.parametrize("attr", ["from_location", "to_location", "date", "time", "seats", "price"])
def test_any_missing_field_blocks_the_write(backend, prefs, attr):
    async def scenario():
        screen = CreateRideScreen(backend, prefs)
        screen.start()
        _fill(screen, **{attr: ""})
        with pytest.raises(MissingField):
            screen.submit()
        screen.stop()
        return screen

    screen = asyncio.run(scenario())

    assert backend.rides.writes == []
    assert screen.state is SubmitState.IDLE


def test_field_errors_and_picker_notices(backend, prefs):
    async def scenario():
        screen = CreateRideScreen(backend, prefs)
        screen.start()
        _fill(screen, seats="0")
        with pytest.raises(InvalidQuantity):
            screen.submit()
        errors = dict(screen.field_errors)

        _fill(screen, date="")
        with pytest.raises(MissingField):
            screen.submit()
        screen.stop()
        return screen, errors

    screen, errors = asyncio.run(scenario())

    assert errors == {"seats": "Must be greater than 0"}
    assert screen.field_errors == {}
    assert screen.notices == ["Please select a date"]


def test_write_failure_reports_and_allows_resubmit(backend, prefs):
    backend.rides.fail_with = "permission denied"

    async def scenario():
        screen = CreateRideScreen(backend, prefs)
        screen.start()
        _fill(screen)

        with pytest.raises(WriteFailed) as exc:
            await screen.submit()
        await screen.settle()
        first_error = exc.value

        assert screen.state is SubmitState.IDLE
        assert screen.submit_enabled is True
        assert screen.submit_label == "Create Ride"

        backend.rides.fail_with = None
        await screen.submit()
        await screen.settle()
        return screen, first_error

    screen, error = asyncio.run(scenario())

    assert error.message == "permission denied"
    assert screen.notices[0] == "Failed to create ride: permission denied"
    assert len(backend.rides.writes) == 2
    assert backend.rides.writes[0][0] != backend.rides.writes[1][0]
    assert screen.state is SubmitState.DONE


def test_submit_is_ignored_while_a_write_is_in_flight(backend, prefs):
    async def scenario():
        screen = CreateRideScreen(backend, prefs)
        screen.start()
        _fill(screen)

        task = screen.submit()
        again = screen.submit()
        await task
        await screen.settle()
        after_done = screen.submit()
        return again, after_done

    again, after_done = asyncio.run(scenario())

    assert again is None
    assert after_done is None
    assert len(backend.rides.writes) == 1


def test_date_picker_refuses_past_dates(backend, prefs):
    screen = CreateRideScreen(backend, prefs)
    today = dt.date(2026, 10, 19)

    with pytest.raises(ValueError):
        screen.select_date(dt.date(2026, 10, 18), today=today)
    assert screen.form.date == ""

    assert screen.select_date(today, today=today) == "Oct 19, 2026"
    assert screen.select_time(dt.time(19, 45)) == "07:45 PM"
    assert screen.form.time == "07:45 PM"


def test_oversized_seat_count_never_reaches_the_write(backend, prefs):
    async def scenario():
        screen = CreateRideScreen(backend, prefs)
        screen.start()
        _fill(screen, seats="99999999999999999999")
        with pytest.raises(InvalidQuantity):
            screen.submit()
        screen.stop()
        return screen

    screen = asyncio.run(scenario())

    assert backend.rides.writes == []
    assert screen.field_errors == {"seats": "Must be greater than 0"}
    assert screen.state is SubmitState.IDLE
