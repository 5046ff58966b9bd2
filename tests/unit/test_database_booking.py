"""
Unit tests for BookingRepository.

Uses moto to mock DynamoDB for isolated testing without AWS credentials.
Covers booking CRUD, the atomic seat booking and seat release, and error
translation.
"""

from unittest.mock import MagicMock, patch

import boto3
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from moto import mock_aws

from src.database.dynamodb_client import BookingRepository
from src.database.exceptions import (
    CapacityError,
    DynamoDBException,
    NetworkError,
    NotFoundError,
    PermissionError,
    ThrottlingError,
)
from src.domain.booking import Booking, BookingStatus, BookingType
from src.domain.session import Session


def create_tables(dynamodb):
    dynamodb.create_table(
        TableName="bookings",
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "userId", "AttributeType": "S"},
            {"AttributeName": "date", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": "userId-index",
                "KeySchema": [{"AttributeName": "userId", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
            {
                "IndexName": "date-index",
                "KeySchema": [{"AttributeName": "date", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            },
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    dynamodb.create_table(
        TableName="sessions",
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def dynamodb():
    with mock_aws():
        resource = boto3.resource("dynamodb", region_name="ap-south-1")
        create_tables(resource)
        yield resource


@pytest.fixture
def repository(dynamodb):
    """Create BookingRepository instance with mocked DynamoDB."""
    return BookingRepository(dynamodb_resource=dynamodb, backoff_base=0)


@pytest.fixture
def put_session(dynamodb):
    def _put(session_id="s-1", capacity=2, enrolled=0):
        dynamodb.Table("sessions").put_item(
            Item={
                "id": session_id,
                "title": "Intro to React",
                "domain": "webdev",
                "date": "2030-06-01",
                "time": "10:00 AM",
                "instructor": "A. Sharma",
                "level": "Beginner",
                "capacity": capacity,
                "enrolled": enrolled,
                "status": "available",
            }
        )

    return _put


def enrolled(dynamodb, session_id="s-1"):
    return int(dynamodb.Table("sessions").get_item(Key={"id": session_id})["Item"]["enrolled"])


def cancelled(*codes):
    """TransactionCanceledException with one reason code per transaction item."""
    return ClientError(
        {
            "Error": {"Code": "TransactionCanceledException", "Message": "Transaction cancelled"},
            "CancellationReasons": [{"Code": code} for code in codes],
        },
        "TransactWriteItems",
    )


def booking_payload(**overrides):
    payload = {
        "userId": "uid-1",
        "userName": "Priya",
        "userEmail": "priya@example.com",
        "sessionType": "webdev",
        "sessionTitle": "Web Development",
        "date": "2030-06-01",
        "time": "10:00 AM - 11:00 AM",
    }
    payload.update(overrides)
    return payload


class TestCreateBooking:
    def test_create_booking_forces_upcoming_and_generates_id(self, repository):
        booking = repository.create_booking(booking_payload(status="Completed"))

        assert booking.id
        assert booking.status == BookingStatus.UPCOMING
        stored = repository.table.get_item(Key={"id": booking.id})["Item"]
        assert stored["status"] == "Upcoming"
        assert stored["userEmail"] == "priya@example.com"
        assert stored["createdAt"].endswith("Z")

    def test_create_booking_accepts_domain_object(self, repository):
        booking = Booking(
            user_id="uid-1",
            user_name="Priya",
            user_email="priya@example.com",
            session_type="aiml",
            session_title="AI & Machine Learning",
            date="2030-06-01",
            time="2:00 PM - 3:00 PM",
            reference="ENG-42",
        )

        stored = repository.create_booking(booking)

        assert repository.get_booking(stored.id).reference == "ENG-42"

    def test_create_booking_preserves_extra_fields(self, repository):
        booking = repository.create_booking(booking_payload(notes="bring laptop"))

        assert repository.get_booking(booking.id).extra_fields == {"notes": "bring laptop"}

    def test_create_booking_missing_fields(self, repository):
        with pytest.raises(DynamoDBException, match="Missing required fields"):
            repository.create_booking({"userId": "uid-1"})


class TestGetUserBookings:
    def test_returns_only_matching_user(self, repository):
        first = repository.create_booking(booking_payload())
        second = repository.create_booking(booking_payload(date="2030-06-02"))
        repository.create_booking(booking_payload(userId="uid-2"))

        results = repository.get_user_bookings("uid-1")

        assert {b.id for b in results} == {first.id, second.id}

    def test_no_bookings(self, repository):
        assert repository.get_user_bookings("nobody") == []

    def test_follows_pagination(self, repository):
        pages = [
            {"Items": [booking_payload(id="a")], "LastEvaluatedKey": {"id": "a"}},
            {"Items": [booking_payload(id="b")]},
        ]
        repository.table = MagicMock()
        repository.table.query.side_effect = pages

        results = repository.get_user_bookings("uid-1")

        assert [b.id for b in results] == ["a", "b"]
        assert repository.table.query.call_args_list[1].kwargs["ExclusiveStartKey"] == {"id": "a"}


class TestCountBookingsByTime:
    def test_counts_per_time_on_date(self, repository):
        repository.create_booking(booking_payload())
        repository.create_booking(booking_payload(userId="uid-2"))
        repository.create_booking(booking_payload(time="2:00 PM - 3:00 PM"))
        repository.create_booking(booking_payload(date="2030-06-02"))

        counts = repository.count_bookings_by_time("2030-06-01")

        assert counts == {"10:00 AM - 11:00 AM": 2, "2:00 PM - 3:00 PM": 1}


class TestBookSession:
    def test_book_session_with_space(self, repository, dynamodb, put_session):
        put_session(capacity=2, enrolled=1)

        booking = repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")

        assert enrolled(dynamodb) == 2
        assert booking.status == BookingStatus.BOOKED
        assert booking.booking_type == BookingType.SESSION
        assert booking.session_id == "s-1"
        records = repository.get_user_bookings("uid-1")
        assert [r.booking_type for r in records] == ["session"]

    def test_book_full_session_raises_and_leaves_counter(self, repository, dynamodb, put_session):
        put_session(capacity=2, enrolled=2)

        with pytest.raises(CapacityError):
            repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")

        assert enrolled(dynamodb) == 2
        assert repository.get_user_bookings("uid-1") == []

    def test_book_missing_session(self, repository):
        with pytest.raises(NotFoundError):
            repository.book_session("missing", "uid-1", "Priya", "priya@example.com")

    def test_last_seat_only_once(self, repository, dynamodb, put_session):
        put_session(capacity=1, enrolled=0)

        repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")
        with pytest.raises(CapacityError):
            repository.book_session("s-1", "uid-2", "Ravi", "ravi@example.com")

        assert enrolled(dynamodb) == 1

    def test_seat_taken_after_precheck_is_full(self, repository, dynamodb, put_session):
        """The read saw a free seat, but the conditional write finds none."""
        put_session(capacity=1, enrolled=1)
        stale = Session.from_dict({"id": "s-1", "title": "Intro to React", "capacity": 1, "enrolled": 0})
        real_load = repository._load_session

        with patch.object(repository, "_load_session", side_effect=[stale, real_load("s-1")]):
            with pytest.raises(CapacityError):
                repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")

        assert enrolled(dynamodb) == 1
        assert repository.get_user_bookings("uid-1") == []

    def test_conflict_is_retried(self, repository, dynamodb, put_session):
        put_session(capacity=5, enrolled=0)
        real_transact = repository.client.transact_write_items
        responses = [cancelled("TransactionConflict", "None")]

        def transact(**kwargs):
            if responses:
                raise responses.pop()
            return real_transact(**kwargs)

        with patch.object(repository.client, "transact_write_items", side_effect=transact):
            repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")

        assert enrolled(dynamodb) == 1

    def test_persistent_conflict_is_not_reported_as_full(self, repository, dynamodb, put_session):
        put_session(capacity=5, enrolled=0)

        with patch.object(
            repository.client,
            "transact_write_items",
            side_effect=cancelled("TransactionConflict", "None"),
        ) as transact:
            with pytest.raises(NetworkError):
                repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")

        assert transact.call_count == 3
        assert enrolled(dynamodb) == 0

    def test_other_cancellation_reason(self, repository, put_session):
        put_session(capacity=5, enrolled=0)

        with patch.object(
            repository.client,
            "transact_write_items",
            side_effect=cancelled("ValidationError", "None"),
        ):
            with pytest.raises(DynamoDBException) as exc_info:
                repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")

        assert not isinstance(exc_info.value, CapacityError)

    def test_reasons_read_from_message(self, repository, put_session):
        put_session(capacity=5, enrolled=0)
        error = ClientError(
            {
                "Error": {
                    "Code": "TransactionCanceledException",
                    "Message": "Transaction cancelled, please refer cancellation reasons for "
                    "specific reasons [ConditionalCheckFailed, None]",
                }
            },
            "TransactWriteItems",
        )

        with patch.object(repository.client, "transact_write_items", side_effect=error):
            with pytest.raises(CapacityError):
                repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")


class TestDeleteBooking:
    def test_delete_appointment(self, repository):
        booking = repository.create_booking(booking_payload())

        assert repository.delete_booking(booking.id) is True

        assert repository.get_booking(booking.id) is None
        assert booking.id not in {b.id for b in repository.get_user_bookings("uid-1")}

    def test_delete_session_booking_releases_seat(self, repository, dynamodb, put_session):
        put_session(capacity=2, enrolled=0)
        booking = repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")

        repository.delete_booking(booking.id, session_id="s-1")

        assert enrolled(dynamodb) == 0
        assert repository.get_user_bookings("uid-1") == []

    def test_delete_when_session_is_gone(self, repository, dynamodb, put_session):
        put_session(capacity=2, enrolled=0)
        booking = repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")
        dynamodb.Table("sessions").delete_item(Key={"id": "s-1"})

        assert repository.delete_booking(booking.id, session_id="s-1") is True

        assert repository.get_booking(booking.id) is None

    def test_delete_releases_exactly_one_seat(self, repository, dynamodb, put_session):
        put_session(capacity=3, enrolled=2)
        booking = repository.create_booking(booking_payload(sessionId="s-1"))

        repository.delete_booking(booking.id, session_id="s-1")

        assert enrolled(dynamodb) == 1
        assert repository.get_booking(booking.id) is None

    def test_repeated_delete_does_not_release_again(self, repository, dynamodb, put_session):
        put_session(capacity=3, enrolled=2)
        booking = repository.create_booking(booking_payload(sessionId="s-1"))

        assert repository.delete_booking(booking.id, session_id="s-1") is True
        assert repository.delete_booking(booking.id, session_id="s-1") is True

        assert enrolled(dynamodb) == 1

    def test_book_then_cancel_restores_counter(self, repository, dynamodb, put_session):
        put_session(capacity=2, enrolled=1)

        booking = repository.book_session("s-1", "uid-1", "Priya", "priya@example.com")
        assert enrolled(dynamodb) == 2

        repository.delete_booking(booking.id, session_id=booking.session_id)
        assert enrolled(dynamodb) == 1

    def test_delete_never_drives_counter_negative(self, repository, dynamodb, put_session):
        put_session(capacity=2, enrolled=0)
        booking = repository.create_booking(booking_payload())

        repository.delete_booking(booking.id, session_id="s-1")

        assert enrolled(dynamodb) == 0
        assert repository.get_booking(booking.id) is None


class TestErrorHandling:
    def _client_error(self, code):
        return ClientError({"Error": {"Code": code, "Message": code}}, "GetItem")

    def test_throttling_retried_then_succeeds(self, repository):
        repository.table = MagicMock()
        repository.table.get_item.side_effect = [
            self._client_error("ProvisionedThroughputExceededException"),
            {"Item": booking_payload(id="b-1")},
        ]

        assert repository.get_booking("b-1").id == "b-1"
        assert repository.table.get_item.call_count == 2

    def test_throttling_after_max_retries(self, repository):
        repository.table = MagicMock()
        repository.table.get_item.side_effect = self._client_error("ThrottlingException")

        with pytest.raises(ThrottlingError):
            repository.get_booking("b-1")
        assert repository.table.get_item.call_count == 3

    def test_access_denied(self, repository):
        repository.table = MagicMock()
        repository.table.get_item.side_effect = self._client_error("AccessDeniedException")

        with pytest.raises(PermissionError):
            repository.get_booking("b-1")

    def test_network_error(self, repository):
        repository.table = MagicMock()
        repository.table.get_item.side_effect = EndpointConnectionError(endpoint_url="https://x")

        with pytest.raises(NetworkError):
            repository.get_booking("b-1")

    def test_other_client_error(self, repository):
        repository.table = MagicMock()
        repository.table.get_item.side_effect = self._client_error("ValidationException")

        with pytest.raises(DynamoDBException):
            repository.get_booking("b-1")

    def test_network_error_is_portal_network_error(self):
        from src import errors

        assert issubclass(NetworkError, errors.NetworkError)
