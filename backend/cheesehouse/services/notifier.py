"""Outbound customer messaging.

``WhatsAppClient`` is a thin HTTP wrapper around the messaging API.
``NotificationDispatcher`` hands voucher messages to a background task.
Delivery through the dispatcher is at most once and unordered: the job
runs after the HTTP response has been decided, a failed send is logged
and dropped (no retry queue), and two jobs carry no ordering guarantee
relative to each other.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

import requests

from cheesehouse import socketio
from cheesehouse.settings import GameSettings


TEMPLATE_WINNER = 'voucher_winner'
TEMPLATE_LOSER = 'voucher_loser'
TEMPLATE_LANGUAGE = 'es'


class NotificationError(Exception):
    pass


@dataclass(frozen=True)
class VoucherNotice:
    """Plain snapshot of what a voucher message needs.

    Built in the request thread so the background task never touches ORM
    objects bound to the request session.
    """
    phone: str
    first_name: str
    code: str
    discount: int
    expires_on: str
    won: bool


def whatsapp_address(phone: str) -> str:
    # The API expects the number without the leading +
    return phone[1:] if phone.startswith('+') else phone


class WhatsAppClient:
    def __init__(self, settings: GameSettings, logger):
        self.token = settings.whatsapp_token
        self.phone_number_id = settings.whatsapp_phone_number_id
        self.api_url = settings.whatsapp_url.rstrip('/')
        self.timeout = settings.whatsapp_timeout
        self.restaurant_name = settings.restaurant_name
        self.logger = logger

    @property
    def configured(self) -> bool:
        return bool(self.token and self.phone_number_id)

    def status(self) -> Dict[str, Any]:
        return {
            'configured': self.configured,
            'access_token': bool(self.token),
            'phone_number_id': bool(self.phone_number_id),
            'api_url': self.api_url,
        }

    def test_connection(self) -> None:
        """Fetch the sender's phone-number record; raises NotificationError on any failure."""
        if not self.configured:
            raise NotificationError('messaging API is not configured')
        url = f"{self.api_url}/{self.phone_number_id}"
        try:
            response = requests.get(url, headers={'Authorization': f"Bearer {self.token}"}, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"could not reach messaging API: {exc}") from exc
        if response.status_code != 200:
            raise NotificationError(f"messaging API answered {response.status_code}")
        self.logger.info('[notify-test] messaging API connection ok')

    def send_voucher(self, notice: VoucherNotice) -> Dict[str, Any]:
        template = TEMPLATE_WINNER if notice.won else TEMPLATE_LOSER
        parameters = [notice.first_name, notice.code, f"{notice.discount}%", notice.expires_on]
        return self.send_template(notice.phone, template, parameters)

    def send_template(self, phone: str, template: str, parameters: List[str]) -> Dict[str, Any]:
        payload = {
            'messaging_product': 'whatsapp',
            'to': whatsapp_address(phone),
            'type': 'template',
            'template': {
                'name': template,
                'language': {'code': TEMPLATE_LANGUAGE},
                'components': [{
                    'type': 'body',
                    'parameters': [{'type': 'text', 'text': p} for p in parameters],
                }],
            },
        }
        return self._send(payload)

    def send_text(self, phone: str, body: str) -> Dict[str, Any]:
        payload = {
            'messaging_product': 'whatsapp',
            'to': whatsapp_address(phone),
            'type': 'text',
            'text': {'body': body},
        }
        return self._send(payload)

    def send_marketing(self, phone: str, message: str, voucher_code: str) -> Dict[str, Any]:
        body = f"*{self.restaurant_name}*\n\n{message}\n\nCode: *{voucher_code}*\n\nSee you soon!"
        return self.send_text(phone, body)

    def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.configured:
            self.logger.info(f"[notify-simulated] to={payload['to']} type={payload['type']}")
            return {'simulated': True}

        url = f"{self.api_url}/{self.phone_number_id}/messages"
        headers = {
            'Authorization': f"Bearer {self.token}",
            'Content-Type': 'application/json',
        }
        self.logger.info(f"[notify-send] to={payload['to']} type={payload['type']}")
        try:
            response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"request to messaging API failed: {exc}") from exc

        if not response.ok:
            raise NotificationError(f"messaging API error {response.status_code}: {response.text}")
        try:
            return response.json()
        except ValueError:
            return {}


class NotificationDispatcher:
    def __init__(self, client: WhatsAppClient, logger, inline: bool = False):
        self.client = client
        self.logger = logger
        # Inline mode runs the job in the caller's thread (tests)
        self.inline = inline

    def dispatch(self, notice: VoucherNotice) -> None:
        if self.inline:
            self._run(notice)
        else:
            socketio.start_background_task(self._run, notice)

    def _run(self, notice: VoucherNotice) -> None:
        try:
            self.client.send_voucher(notice)
        except NotificationError as exc:
            self.logger.error(f"[notify-fail] to={notice.phone} code={notice.code}: {exc}")
        except Exception:
            self.logger.exception(f"[notify-fail] to={notice.phone} code={notice.code}: unexpected error")
        else:
            self.logger.info(f"[notify-ok] to={notice.phone} code={notice.code}")
