"""Unit tests for SesEmailClient (src/notifications/email_service.py)."""

from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from src.domain.booking import Booking
from src.notifications.email_service import EmailServiceError, SesEmailClient

SENDER = "no-reply@engiversee.com"


def make_booking(**overrides):
    data = dict(
        id="b-1",
        user_id="uid-1",
        user_name="Priya",
        user_email="priya@example.com",
        session_type="webdev",
        session_title="Web Development",
        date="2030-06-01",
        time="10:00 AM - 11:00 AM",
        reference="ENG-4821",
    )
    data.update(overrides)
    return Booking(**data)


@pytest.fixture
def ses():
    with mock_aws():
        client = boto3.client("ses", region_name="ap-south-1")
        client.verify_email_identity(EmailAddress=SENDER)
        yield client


class TestSendBookingConfirmation:
    def test_sends_through_ses(self, ses):
        email_client = SesEmailClient(sender=SENDER, ses_client=ses)

        message_id = email_client.send_booking_confirmation(make_booking())

        assert message_id
        assert ses.get_send_quota()["SentLast24Hours"] == 1

    def test_renders_template_fields(self):
        ses = MagicMock()
        ses.send_email.return_value = {"MessageId": "m-1"}

        SesEmailClient(sender=SENDER, ses_client=ses).send_booking_confirmation(make_booking())

        kwargs = ses.send_email.call_args.kwargs
        assert kwargs["Source"] == SENDER
        assert kwargs["Destination"] == {"ToAddresses": ["priya@example.com"]}
        assert kwargs["Message"]["Subject"]["Data"] == "Appointment Confirmation"
        html = kwargs["Message"]["Body"]["Html"]["Data"]
        assert "Dear Priya" in html
        assert "ENG-4821" in html
        assert "Web Development" in html
        assert "10:00 AM - 11:00 AM" in html
        assert "Upcoming" in html

    def test_html_fields_are_escaped(self):
        ses = MagicMock()
        ses.send_email.return_value = {"MessageId": "m-1"}

        SesEmailClient(sender=SENDER, ses_client=ses).send_booking_confirmation(
            make_booking(user_name="<script>x</script>")
        )

        html = ses.send_email.call_args.kwargs["Message"]["Body"]["Html"]["Data"]
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_missing_name_falls_back_to_user(self):
        fields = SesEmailClient.booking_fields(make_booking(user_name="", reference=None))
        assert fields["name"] == "User"
        assert fields["booking_id"] == "b-1"

    def test_missing_email_raises_value_error(self):
        ses = MagicMock()

        with pytest.raises(ValueError):
            SesEmailClient(sender=SENDER, ses_client=ses).send_booking_confirmation(
                make_booking(user_email="")
            )
        ses.send_email.assert_not_called()

    def test_ses_rejection_raises(self):
        ses = MagicMock()
        ses.send_email.side_effect = ClientError(
            {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified."}},
            "SendEmail",
        )

        with pytest.raises(EmailServiceError):
            SesEmailClient(sender=SENDER, ses_client=ses).send_booking_confirmation(make_booking())

    def test_unverified_sender_rejected_by_ses(self):
        with mock_aws():
            ses = boto3.client("ses", region_name="ap-south-1")
            with pytest.raises(EmailServiceError):
                SesEmailClient(sender=SENDER, ses_client=ses).send_booking_confirmation(make_booking())


def test_missing_templates_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        SesEmailClient(sender=SENDER, ses_client=MagicMock(), templates_path=tmp_path / "x.yaml")
