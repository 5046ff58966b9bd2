import json
from types import SimpleNamespace

import pytest
import requests

from src.errors import NetworkError
from src.notifications.whatsapp_service import (
    WhatsAppService,
    WhatsAppServiceError,
    validate_whatsapp_number,
)

API_URL = "https://wa.example.com/messages"


class HttpStub:
    def __init__(self, status_code=200, raise_exc=None):
        self.status_code = status_code
        self.raise_exc = raise_exc
        self.requests = []

    def post(self, url, headers=None, data=None, timeout=None):
        self.requests.append({"url": url, "headers": headers, "payload": json.loads(data), "timeout": timeout})
        if self.raise_exc:
            raise self.raise_exc
        text = "error" if self.status_code >= 400 else "ok"
        return SimpleNamespace(status_code=self.status_code, text=text)


class TestValidateWhatsAppNumber:
    @pytest.mark.parametrize(
        "number",
        [
            "+91 98765 43210",  # 2-digit country code + 10 digits
            "919876543210",
            "1 41555501",  # 1 + 8
            "1234 123456789012345",  # 4 + 15
        ],
    )
    def test_valid_numbers(self, number):
        assert validate_whatsapp_number(number) is True

    @pytest.mark.parametrize(
        "number",
        [
            None,
            "",
            "0987654321",  # leading zero
            "12345678",  # 8 digits total
            "12341234567890123456",  # 20 digits total
            "abc",
        ],
    )
    def test_invalid_numbers(self, number):
        assert validate_whatsapp_number(number) is False


class TestLogOnlyMode:
    def test_without_api_nothing_is_posted(self):
        stub = HttpStub()
        service = WhatsAppService(http_client=stub)

        result = service.send_welcome_message("Priya", "+919876543210")

        assert result == {"success": True, "message": "Welcome message prepared with group invite link"}
        assert stub.requests == []

    def test_url_without_token_is_log_only(self):
        stub = HttpStub()
        service = WhatsAppService(api_url=API_URL, http_client=stub)

        service.send_custom_message("+919876543210", "hi")

        assert service.api_url is None
        assert stub.requests == []

    def test_from_settings_disabled(self):
        settings = SimpleNamespace(load_whatsapp_credentials=lambda: {})
        assert WhatsAppService.from_settings(settings).api_url is None


class TestDelivery:
    def _service(self, stub):
        return WhatsAppService(api_url=API_URL, token="wa-token", http_client=stub)

    def test_welcome_message_includes_group_link(self):
        stub = HttpStub()
        service = self._service(stub)

        service.send_welcome_message("Priya", "+91 98765 43210")

        request = stub.requests[0]
        assert request["url"] == API_URL
        assert request["headers"]["Authorization"] == "Bearer wa-token"
        assert request["timeout"] == 10
        assert request["payload"]["to"] == "whatsapp:+919876543210"
        assert "Priya" in request["payload"]["body"]
        assert service.group_invite_link in request["payload"]["body"]

    def test_verification_message_contains_link(self):
        stub = HttpStub()

        self._service(stub).send_verification_message(
            "Priya", "919876543210", "https://engiversee.com/verify-email"
        )

        assert "https://engiversee.com/verify-email" in stub.requests[0]["payload"]["body"]

    def test_course_enrollment_message(self):
        stub = HttpStub()

        result = self._service(stub).send_course_enrollment_message("Priya", "919876543210", "Intro to React")

        assert result["success"] is True
        assert '"Intro to React"' in stub.requests[0]["payload"]["body"]

    def test_custom_message_with_media(self):
        stub = HttpStub()

        self._service(stub).send_custom_message("919876543210", "See attached", media_url="https://x/y.png")

        assert stub.requests[0]["payload"]["mediaUrl"] == ["https://x/y.png"]

    def test_api_rejection_raises(self):
        with pytest.raises(WhatsAppServiceError):
            self._service(HttpStub(status_code=401)).send_welcome_message("Priya", "919876543210")

    def test_transport_failure_is_network_error(self):
        stub = HttpStub(raise_exc=requests.Timeout("slow"))

        with pytest.raises(NetworkError):
            self._service(stub).send_welcome_message("Priya", "919876543210")


def test_missing_templates_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        WhatsAppService(templates_path=tmp_path / "missing.yaml")
