"""
DynamoDB repository implementations for bookings, catalog sessions and user profiles.

This module provides a clean abstraction over DynamoDB operations with
dependency injection for testability and structured logging. Capacity
changes on catalog sessions are made with conditional transactional writes,
so concurrent bookers cannot oversell a session.
"""

import re
import time
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Callable, Iterable, Union

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError, BotoCoreError

from src.domain.booking import Booking, BookingStatus, BookingType
from src.domain.session import Session, SessionLevel
from src.domain.user import UserProfile
from src.utils.logger import get_logger, mask_email
from .exceptions import (
    CapacityError,
    DynamoDBException,
    NotFoundError,
    ThrottlingError,
    NetworkError,
    PermissionError,
)


logger = get_logger(__name__)

THROTTLING_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
}

USER_INDEX = "userId-index"
DATE_INDEX = "date-index"


CONDITION_FAILED = "ConditionalCheckFailed"

RETRYABLE_CANCELLATIONS = {
    "TransactionConflict",
    "ThrottlingError",
    "ProvisionedThroughputExceeded",
    "RequestLimitExceeded",
}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _cancellation_codes(error: ClientError) -> List[str]:
    """
    Per-item reason codes of a cancelled transaction, in TransactItems order.

    Read from ``CancellationReasons`` when present, otherwise from the
    bracketed list in the message ("... reasons [ConditionalCheckFailed, None]").
    """
    reasons = error.response.get("CancellationReasons")
    if reasons:
        return [str(reason.get("Code") or "None") for reason in reasons]

    message = error.response.get("Error", {}).get("Message", "")
    match = re.search(r"\[([^\]]*)\]", message)
    if not match:
        return []
    return [code.strip() or "None" for code in match.group(1).split(",")]


def _failed(codes: List[str], index: int) -> bool:
    return len(codes) > index and codes[index] == CONDITION_FAILED


class _DynamoRepository:
    """
    Shared plumbing: table wiring, throttling retries with exponential
    backoff, and botocore exception translation.
    """

    def __init__(
        self,
        table_name: str,
        dynamodb_resource: Optional[Any] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        self.table_name = table_name
        self.dynamodb = dynamodb_resource or boto3.resource("dynamodb")
        self.table = self.dynamodb.Table(table_name)
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    def _execute(  # type: ignore[return]
        self,
        operation: str,
        context: Dict[str, Any],
        call: Callable[[], Any],
        passthrough: Iterable[str] = (),
    ) -> Any:
        """
        Run a DynamoDB call with retry on throttling.

        Args:
            operation: Operation name for logs
            context: Masked log context
            call: Zero-argument callable performing the request
            passthrough: Error codes re-raised as ClientError for the caller
                to interpret (e.g. conditional check failures)

        Raises:
            ThrottlingError: If throttled after max retries
            PermissionError: If IAM permissions insufficient
            NetworkError: If connection fails
            DynamoDBException: Any other DynamoDB error
        """
        for attempt in range(self.max_retries):
            try:
                start_time = time.time()
                result = call()
                logger.info(
                    f"{operation} succeeded",
                    operation=operation,
                    context=context,
                    duration_ms=(time.time() - start_time) * 1000,
                )
                return result

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")

                if error_code in passthrough:
                    raise

                if error_code in THROTTLING_CODES:
                    if attempt < self.max_retries - 1:
                        wait_time = self.backoff_base * (2**attempt)
                        logger.warning(
                            f"Throttled, retrying after {wait_time}s",
                            operation=operation,
                            context=context,
                            error=error_code,
                        )
                        time.sleep(wait_time)
                        continue
                    logger.error(
                        "Throttling after max retries",
                        operation=operation,
                        context=context,
                        error=error_code,
                    )
                    raise ThrottlingError(f"DynamoDB throttled after {self.max_retries} retries")

                if error_code == "AccessDeniedException":
                    logger.error(
                        "Permission denied",
                        operation=operation,
                        context=context,
                        error=error_code,
                    )
                    raise PermissionError(f"Insufficient IAM permissions: {error_code}")

                logger.error("DynamoDB error", operation=operation, context=context, error=str(e))
                raise DynamoDBException(f"DynamoDB error: {e}")

            except (BotoCoreError, OSError) as e:
                logger.error("Network error", operation=operation, context=context, error=str(e))
                raise NetworkError(f"Network error: {e}")

    def _query_all(self, operation: str, context: Dict[str, Any], **kwargs) -> List[Dict[str, Any]]:
        """Run a paginated query, concatenating pages in store order."""
        items: List[Dict[str, Any]] = []
        while True:
            response = self._execute(operation, context, lambda: self.table.query(**kwargs))
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    def _scan_all(self, operation: str, context: Dict[str, Any], **kwargs) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        while True:
            response = self._execute(operation, context, lambda: self.table.scan(**kwargs))
            items.extend(response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key


class BookingRepository(_DynamoRepository):
    """
    Repository for Booking persistence in DynamoDB.

    Owns the ``bookings`` table and moves the ``enrolled`` counter of the
    linked record in the ``sessions`` table.

    Table Schema:
        Partition Key: id
        GSI userId-index: userId (HASH)
        GSI date-index: date (HASH)
    """

    def __init__(
        self,
        table_name: str = "bookings",
        sessions_table_name: str = "sessions",
        dynamodb_resource: Optional[Any] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        """
        Initialize BookingRepository.

        Args:
            table_name: Bookings table name
            sessions_table_name: Catalog sessions table name
            dynamodb_resource: boto3 DynamoDB resource (default: creates new)
            max_retries: Number of retries for throttling errors
            backoff_base: Base exponential backoff multiplier (seconds)
        """
        super().__init__(table_name, dynamodb_resource, max_retries, backoff_base)
        self.sessions_table_name = sessions_table_name
        self.sessions_table = self.dynamodb.Table(sessions_table_name)
        # The resource's client takes plain Python values, like Table calls
        self.client = self.dynamodb.meta.client

    def _transact(
        self, operation: str, context: Dict[str, Any], transact_items: List[Dict[str, Any]]
    ) -> List[str]:
        """
        Run a write transaction, retrying conflicts with exponential backoff.

        Returns:
            [] when committed, otherwise the per-item cancellation codes of a
            transaction whose conditions failed

        Raises:
            NetworkError: Still conflicting or throttled after max retries
            DynamoDBException: Cancelled for any other reason
        """
        codes: List[str] = []
        for attempt in range(self.max_retries):
            try:
                self._execute(
                    operation,
                    context,
                    lambda: self.client.transact_write_items(TransactItems=transact_items),
                    passthrough=("TransactionCanceledException",),
                )
                return []
            except ClientError as e:
                codes = _cancellation_codes(e)

            if CONDITION_FAILED in codes:
                return codes

            if not set(codes) & RETRYABLE_CANCELLATIONS:
                logger.error(
                    "Transaction cancelled",
                    operation=operation,
                    context=context,
                    error=", ".join(codes),
                )
                raise DynamoDBException(f"Transaction cancelled: {codes}")

            if attempt < self.max_retries - 1:
                wait_time = self.backoff_base * (2**attempt)
                logger.warning(
                    f"Transaction conflict, retrying after {wait_time}s",
                    operation=operation,
                    context=context,
                    error=", ".join(codes),
                )
                time.sleep(wait_time)

        logger.error(
            "Transaction conflict after max retries",
            operation=operation,
            context=context,
            error=", ".join(codes),
        )
        raise NetworkError(f"Transaction still cancelled after {self.max_retries} attempts: {codes}")

    def create_booking(self, data: Union[Booking, Dict[str, Any]]) -> Booking:
        """
        Create a new booking record.

        The status is always forced to ``Upcoming``; the identifier is
        generated here.

        Args:
            data: Booking or dict with userId/userName/userEmail/sessionType/
                sessionTitle/date/time (camelCase or snake_case keys)

        Returns:
            The stored Booking, including its generated id

        Raises:
            DynamoDBException: If required fields are missing or DynamoDB fails
        """
        booking = data if isinstance(data, Booking) else Booking.from_dict(dict(data))

        missing = [
            name
            for name in ("user_id", "user_email", "date", "time", "session_type")
            if not getattr(booking, name)
        ]
        if missing:
            raise DynamoDBException(f"Missing required fields: {missing}")

        booking.id = uuid.uuid4().hex
        booking.status = BookingStatus.UPCOMING
        booking.created_at = booking.created_at or _utc_now_iso()
        record = booking.to_dict()

        context = {"booking_id": booking.id, "email_masked": mask_email(booking.user_email)}
        logger.debug("Creating booking", operation="create_booking", context=context)

        self._execute(
            "create_booking",
            context,
            lambda: self.table.put_item(
                Item=record, ConditionExpression="attribute_not_exists(id)"
            ),
        )
        return booking

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Return the booking or None when it does not exist."""
        context = {"booking_id": booking_id}
        response = self._execute(
            "get_booking", context, lambda: self.table.get_item(Key={"id": booking_id})
        )
        item = response.get("Item")
        return Booking.from_dict(item) if item else None

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        """
        Return every booking owned by ``user_id`` in store order (no sort).

        Args:
            user_id: Identity-provider uid

        Returns:
            List of Booking (possibly empty)
        """
        items = self._query_all(
            "get_user_bookings",
            {"user_id": user_id},
            IndexName=USER_INDEX,
            KeyConditionExpression=Key("userId").eq(user_id),
        )
        return [Booking.from_dict(item) for item in items]

    def count_bookings_by_time(self, date: str) -> Dict[str, int]:
        """
        Count bookings per ``time`` value on a date (used for slot limits).

        Returns:
            Mapping of time/slot id to booking count
        """
        items = self._query_all(
            "count_bookings_by_time",
            {"date": date},
            IndexName=DATE_INDEX,
            KeyConditionExpression=Key("date").eq(date),
        )
        return dict(Counter(item.get("time", "") for item in items))

    def book_session(
        self,
        session_id: str,
        user_id: str,
        user_name: str,
        user_email: str,
    ) -> Booking:
        """
        Atomically take one seat in a catalog session and record the booking.

        The ``enrolled < capacity`` check and the increment happen in the same
        conditional write as the booking insert, so simultaneous bookers can
        never push ``enrolled`` past ``capacity``.

        Returns:
            The stored Booking (status ``booked``, bookingType ``session``)

        Raises:
            NotFoundError: If the session does not exist
            CapacityError: If the session is full (nothing is written)
        """
        session = self._load_session(session_id)
        if session is None:
            raise NotFoundError(f"Session '{session_id}' not found")
        if session.is_full():
            logger.warning(
                "Session full before booking",
                operation="book_session",
                context={"session_id": session_id, "capacity": session.capacity},
            )
            raise CapacityError("This session is full")

        booking = Booking(
            id=uuid.uuid4().hex,
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            session_type=session.domain,
            session_title=session.title,
            date=session.date,
            time=session.time,
            status=BookingStatus.BOOKED,
            booking_type=BookingType.SESSION,
            session_id=session_id,
            created_at=_utc_now_iso(),
        )

        context = {
            "booking_id": booking.id,
            "session_id": session_id,
            "email_masked": mask_email(user_email),
        }

        transact_items = [
            {
                "Update": {
                    "TableName": self.sessions_table_name,
                    "Key": {"id": session_id},
                    "UpdateExpression": "SET #enrolled = #enrolled + :one",
                    "ConditionExpression": "attribute_exists(id) AND #enrolled < #capacity",
                    "ExpressionAttributeNames": {"#enrolled": "enrolled", "#capacity": "capacity"},
                    "ExpressionAttributeValues": {":one": 1},
                }
            },
            {
                "Put": {
                    "TableName": self.table_name,
                    "Item": booking.to_dict(),
                    "ConditionExpression": "attribute_not_exists(id)",
                }
            },
        ]

        codes = self._transact("book_session", context, transact_items)
        if not codes:
            return booking

        if _failed(codes, 0):
            current = self._load_session(session_id)
            if current is None:
                raise NotFoundError(f"Session '{session_id}' not found")
            logger.warning(
                "Session filled up during booking",
                operation="book_session",
                context={**context, "enrolled": current.enrolled, "capacity": current.capacity},
            )
            raise CapacityError("This session is full")

        logger.error(
            "Booking id collision", operation="book_session", context=context, error=", ".join(codes)
        )
        raise DynamoDBException(f"Booking '{booking.id}' already exists")

    def delete_booking(self, booking_id: str, session_id: Optional[str] = None) -> bool:
        """
        Delete a booking; release its seat when ``session_id`` is given.

        The delete and the decrement are one transaction. If the linked session
        no longer exists (or is already at zero) the booking is deleted alone.
        Deleting a booking that is already gone releases nothing.

        Raises:
            NetworkError: The transaction kept conflicting with other writers

        Returns:
            True if successful (or item didn't exist)
        """
        context = {"booking_id": booking_id, "session_id": session_id}

        if not session_id:
            self._execute(
                "delete_booking",
                context,
                lambda: self.table.delete_item(Key={"id": booking_id}),
            )
            return True

        transact_items = [
            {
                "Delete": {
                    "TableName": self.table_name,
                    "Key": {"id": booking_id},
                    "ConditionExpression": "attribute_exists(id)",
                }
            },
            {
                "Update": {
                    "TableName": self.sessions_table_name,
                    "Key": {"id": session_id},
                    "UpdateExpression": "SET #enrolled = #enrolled - :one",
                    "ConditionExpression": "attribute_exists(id) AND #enrolled > :zero",
                    "ExpressionAttributeNames": {"#enrolled": "enrolled"},
                    "ExpressionAttributeValues": {":one": 1, ":zero": 0},
                }
            },
        ]

        codes = self._transact("delete_booking", context, transact_items)
        if not codes:
            return True

        if _failed(codes, 0):
            # Already deleted; its seat was released by that delete
            logger.info("Booking already deleted", operation="delete_booking", context=context)
            return True

        logger.warning(
            "Seat release skipped; deleting booking only",
            operation="delete_booking",
            context=context,
            error=", ".join(codes),
        )
        self._execute(
            "delete_booking",
            context,
            lambda: self.table.delete_item(Key={"id": booking_id}),
        )
        return True

    def _load_session(self, session_id: str) -> Optional[Session]:
        response = self._execute(
            "get_session",
            {"session_id": session_id},
            lambda: self.sessions_table.get_item(Key={"id": session_id}, ConsistentRead=True),
        )
        item = response.get("Item")
        return Session.from_dict(item) if item else None


class SessionRepository(_DynamoRepository):
    """
    Repository for catalog sessions.

    Table Schema:
        Partition Key: id
    """

    def __init__(
        self,
        table_name: str = "sessions",
        dynamodb_resource: Optional[Any] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        super().__init__(table_name, dynamodb_resource, max_retries, backoff_base)

    def create_session(self, data: Dict[str, Any]) -> Session:
        """
        Create a catalog session (administrative).

        Args:
            data: title, domain, date, time, instructor, level, capacity and
                optionally enrolled (defaults to 0)

        Raises:
            DynamoDBException: If fields are missing or the counters are invalid
        """
        required = {"title", "domain", "date", "time", "instructor", "capacity"}
        missing = required - {key for key, value in data.items() if value not in (None, "")}
        if missing:
            raise DynamoDBException(f"Missing required fields: {sorted(missing)}")

        level = data.get("level", SessionLevel.BEGINNER)
        if level not in SessionLevel.ALL:
            raise DynamoDBException(f"Unknown session level: {level}")

        capacity = int(data["capacity"])
        enrolled = int(data.get("enrolled", 0))
        if capacity < 1 or not 0 <= enrolled <= capacity:
            raise DynamoDBException(
                f"Invalid counters: capacity={capacity}, enrolled={enrolled}"
            )

        session = Session(
            id=uuid.uuid4().hex,
            title=data["title"],
            domain=data["domain"],
            date=data["date"],
            time=data["time"],
            instructor=data["instructor"],
            level=level,
            capacity=capacity,
            enrolled=enrolled,
            created_at=_utc_now_iso(),
        )

        self._execute(
            "create_session",
            {"session_id": session.id, "title": session.title},
            lambda: self.table.put_item(Item=session.to_dict()),
        )
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        """Return the session or None when not found."""
        response = self._execute(
            "get_session",
            {"session_id": session_id},
            lambda: self.table.get_item(Key={"id": session_id}),
        )
        item = response.get("Item")
        return Session.from_dict(item) if item else None

    def list_sessions(
        self, domain: Optional[str] = None, level: Optional[str] = None
    ) -> List[Session]:
        """
        List catalog sessions, optionally filtered by domain and/or level.

        Empty-string filters mean "all", matching the search page dropdowns.
        """
        condition = None
        if domain:
            condition = Attr("domain").eq(domain)
        if level:
            level_condition = Attr("level").eq(level)
            condition = level_condition if condition is None else condition & level_condition

        kwargs: Dict[str, Any] = {}
        if condition is not None:
            kwargs["FilterExpression"] = condition

        items = self._scan_all(
            "list_sessions", {"domain": domain, "level": level}, **kwargs
        )
        return [Session.from_dict(item) for item in items]


class UserRepository(_DynamoRepository):
    """
    Repository for user profile documents.

    Table Schema:
        Partition Key: uid
    """

    def __init__(
        self,
        table_name: str = "users",
        dynamodb_resource: Optional[Any] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
    ):
        super().__init__(table_name, dynamodb_resource, max_retries, backoff_base)

    def put_profile(self, profile: UserProfile) -> bool:
        """Create or overwrite a profile document."""
        self._execute(
            "put_profile",
            {"uid": profile.uid, "email_masked": mask_email(profile.email)},
            lambda: self.table.put_item(Item=profile.to_dict()),
        )
        return True

    def get_profile(self, uid: str) -> Optional[UserProfile]:
        """Return the profile or None when not found."""
        response = self._execute(
            "get_profile", {"uid": uid}, lambda: self.table.get_item(Key={"uid": uid})
        )
        item = response.get("Item")
        return UserProfile.from_dict(item) if item else None

    def update_profile(self, uid: str, fields: Dict[str, Any]) -> bool:
        """
        Set the given stored attributes on an existing profile.

        Raises:
            NotFoundError: If the profile does not exist
        """
        if not fields:
            return True

        names = {f"#f{i}": key for i, key in enumerate(fields)}
        values = {f":v{i}": value for i, value in enumerate(fields.values())}
        expression = "SET " + ", ".join(f"#f{i} = :v{i}" for i in range(len(fields)))

        try:
            self._execute(
                "update_profile",
                {"uid": uid, "fields": sorted(fields)},
                lambda: self.table.update_item(
                    Key={"uid": uid},
                    UpdateExpression=expression,
                    ExpressionAttributeNames=names,
                    ExpressionAttributeValues=values,
                    ConditionExpression="attribute_exists(uid)",
                ),
                passthrough=("ConditionalCheckFailedException",),
            )
        except ClientError:
            raise NotFoundError(f"Profile '{uid}' not found")
        return True
