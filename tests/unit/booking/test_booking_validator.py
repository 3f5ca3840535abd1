import pytest
from datetime import datetime, timezone

from bookingcore.validators.val_booking import BookingValidationError, BookingValidator
from bookingcore.models.mod_booking import Booking, BookingLocation, BookingStatus

NOW = datetime(2026, 10, 17, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def booking():
    return Booking(
        id="booking123",
        client_id="client1",
        business_id="business1",
        service_title="Haircut",
        scheduled_at=datetime(2026, 10, 19, 15, 0),
        contact_name="Ana Cruz",
        contact_phone="555-0100",
        created_at=NOW,
        updated_at=NOW
    )


class TestBookingValidator:
    def test_valid_booking(self, booking):
        BookingValidator.validate_booking(booking)

    @pytest.mark.parametrize("field", ["service_title", "contact_name", "contact_phone"])
    def test_blank_fields(self, booking, field):
        setattr(booking, field, " ")

        with pytest.raises(BookingValidationError) as excinfo:
            BookingValidator.validate_booking(booking)

        assert excinfo.value.status_code == 400
        assert excinfo.value.detail == {
            "code": "validation_error",
            "message": f"{field} is required",
            "field": field
        }

    def test_negative_price(self, booking):
        booking.service_price = -1

        with pytest.raises(BookingValidationError) as excinfo:
            BookingValidator.validate_booking(booking)

        assert excinfo.value.field == "service_price"

    def test_rejection_reason_needs_rejected_status(self, booking):
        booking.rejection_reason = "Fully booked"

        with pytest.raises(BookingValidationError):
            BookingValidator.validate_booking(booking)

        booking.status = BookingStatus.REJECTED
        BookingValidator.validate_booking(booking)

    def test_location_needs_address(self, booking):
        booking.location = BookingLocation(address=" ", latitude=1.0, longitude=2.0)

        with pytest.raises(BookingValidationError) as excinfo:
            BookingValidator.validate_booking(booking)

        assert excinfo.value.field == "location.address"

    def test_location_coordinates_must_be_finite(self, booking):
        booking.location = BookingLocation(address="12 Main St", latitude=float("nan"), longitude=2.0)

        with pytest.raises(BookingValidationError) as excinfo:
            BookingValidator.validate_booking(booking)

        assert excinfo.value.field == "location.latitude"
