import threading

import pytest
import requests
from pydantic import SecretStr

from parcelops.models import NotificationType
from parcelops.services.sms_service import SmsDeliveryError, SmsService, TwilioSmsGateway


def test_feed_is_capped_and_newest_first(notifications, notification_repo, config):
    for i in range(config.NOTIFICATION_LIMIT + 7):
        notifications.emit(title=f"n{i}", message="m", target_branch="Malabo")

    stored = notification_repo.get_all()

    assert len(stored) == config.NOTIFICATION_LIMIT
    assert stored[0].title == f"n{config.NOTIFICATION_LIMIT + 6}"
    assert stored[-1].title == "n7"


def test_mark_read(notifications, admin_malabo):
    emitted = notifications.emit(title="t", message="m", target_branch="Malabo")
    assert notifications.unread_count(admin_malabo) == 1

    result = notifications.mark_read(emitted.id)

    assert result.success
    assert result.data.read is True
    assert notifications.unread_count(admin_malabo) == 0


def test_mark_read_unknown_id(notifications):
    assert notifications.mark_read("missing").status_code == 404


def test_mark_all_read_only_touches_visible_items(notifications, admin_malabo, admin_bata):
    notifications.emit(title="a", message="m", target_branch="Malabo")
    notifications.emit(title="b", message="m", target_branch="Malabo")
    notifications.emit(title="c", message="m", target_branch="Bata")
    notifications.emit(title="d", message="m", type=NotificationType.SUCCESS)

    assert notifications.mark_all_read(admin_malabo) == 2

    assert notifications.unread_count(admin_malabo) == 0
    assert notifications.unread_count(admin_bata) == 1


def test_global_notifications_reach_super_admin_only(notifications, super_admin, admin_malabo):
    notifications.emit(title="global", message="m")

    assert [n.title for n in notifications.list_for(super_admin)] == ["global"]
    assert notifications.list_for(admin_malabo) == []


class _Response:
    def __init__(self, status_code=201, payload=None):
        self.status_code = status_code
        self.text = "error body"
        self._payload = payload or {"sid": "SM123"}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(response=self)

    def json(self):
        return self._payload


class _HtmlResponse(_Response):
    def json(self):
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


class _Session:
    def __init__(self, response=None, exc=None):
        self.calls = []
        self._response = response or _Response()
        self._exc = exc

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self._exc is not None:
            raise self._exc
        return self._response


@pytest.fixture
def twilio_config(config):
    return config.model_copy(update={
        "TWILIO_ACCOUNT_SID": "AC1",
        "TWILIO_AUTH_TOKEN": SecretStr("token"),
        "TWILIO_PHONE_NUMBER": "+15550001",
    })


def test_twilio_gateway_posts_form(twilio_config):
    session = _Session()
    gateway = TwilioSmsGateway(twilio_config, session=session)

    assert gateway.send("+240 222", "hola") == "SM123"

    url, kwargs = session.calls[0]
    assert url == "https://api.twilio.com/2010-04-01/Accounts/AC1/Messages.json"
    assert kwargs["data"] == {"To": "+240 222", "From": "+15550001", "Body": "hola"}
    assert kwargs["auth"] == ("AC1", "token")
    assert kwargs["timeout"] == twilio_config.SMS_TIMEOUT_S


def test_twilio_gateway_requires_credentials(config):
    session = _Session()

    with pytest.raises(SmsDeliveryError):
        TwilioSmsGateway(config, session=session).send("+240", "x")
    assert session.calls == []


@pytest.mark.parametrize("session", [
    _Session(response=_Response(status_code=400)),
    _Session(exc=requests.exceptions.ConnectionError("down")),
    _Session(response=_HtmlResponse(status_code=200)),
])
def test_twilio_gateway_wraps_http_failures(twilio_config, session):
    with pytest.raises(SmsDeliveryError):
        TwilioSmsGateway(twilio_config, session=session).send("+240", "x")


def test_sms_service_logs_and_swallows_delivery_errors(sms_gateway, logger):
    sms_gateway.fail = True
    service = SmsService(sms_gateway, logger)

    assert service.send("+240", "x") is None


def test_sms_service_send_async(sms_gateway, logger):
    service = SmsService(sms_gateway, logger)

    service.send_async("+240", "x").join(timeout=5)

    assert sms_gateway.sent == [("+240", "x")]


class _CrashingGateway:
    def send(self, to, body):
        raise RuntimeError("socket closed")


def test_send_async_keeps_unexpected_errors_on_the_thread(logger, monkeypatch):
    escaped = []
    logged = []
    monkeypatch.setattr(threading, "excepthook", escaped.append)
    monkeypatch.setattr(logger, "error", lambda msg, *args, **kwargs: logged.append(kwargs))
    service = SmsService(_CrashingGateway(), logger)

    service.send_async("+240", "x").join(timeout=5)

    assert escaped == []
    assert logged == [{"exc_info": True}]
