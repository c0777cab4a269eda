"""HTTP clients used by the wizard: the registration endpoint and the mail relay."""
from __future__ import annotations

import io
import logging
from typing import Any, Dict
from urllib.parse import urlsplit

import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from settings import HTTP_TIMEOUT

log = logging.getLogger(__name__)

SUBMIT_FALLBACK_MESSAGE = "Impossible d'envoyer le formulaire."
SAVE_FALLBACK_MESSAGE = "Erreur lors de la sauvegarde"


class SubmissionError(Exception):
    """The registration endpoint did not accept the draft."""

    def __init__(self, details: str, status_code: int | None = None):
        super().__init__(details)
        self.details = details
        self.status_code = status_code


class InProcessAdapter(BaseAdapter):
    """Serve requests from a local WSGI app instead of the network.

    Mounted on the registration session when the handler lives in the same
    app, so a submission never waits on a second worker of its own server.
    """

    def __init__(self, app):
        super().__init__()
        self.app = app

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        parts = urlsplit(request.url)
        headers = {k: v for k, v in request.headers.items() if k.lower() != "content-length"}
        local = self.app.test_client().open(
            parts.path,
            method=request.method,
            query_string=parts.query,
            headers=headers,
            data=request.body,
        )

        response = requests.Response()
        response.status_code = local.status_code
        response.headers = CaseInsensitiveDict(local.headers.items())
        response.raw = io.BytesIO(local.get_data())
        response.encoding = local.mimetype_params.get("charset", "utf-8")
        response.reason = local.status.partition(" ")[2]
        response.url = request.url
        response.request = request
        return response

    def close(self):
        pass


class RegistrationClient:
    def __init__(self, url: str, timeout: float = HTTP_TIMEOUT, session: requests.Session | None = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def submit(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST the draft and return the inserted row."""
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            log.error("Registration request failed: %s", exc)
            raise SubmissionError(SUBMIT_FALLBACK_MESSAGE) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            details = body.get("details") if isinstance(body, dict) else None
            log.warning("Registration rejected (status=%s): %s", response.status_code, details)
            raise SubmissionError(details or SAVE_FALLBACK_MESSAGE, response.status_code)

        if not isinstance(body, dict) or not body.get("success"):
            raise SubmissionError(SUBMIT_FALLBACK_MESSAGE, response.status_code)
        return body.get("data") or {}

    @classmethod
    def in_process(cls, app, url: str, timeout: float = HTTP_TIMEOUT) -> "RegistrationClient":
        session = requests.Session()
        adapter = InProcessAdapter(app)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return cls(url, timeout=timeout, session=session)


class MailRelayClient:
    """Best-effort secondary notification; never raises."""

    def __init__(self, endpoint: str, timeout: float = HTTP_TIMEOUT):
        self.endpoint = endpoint.strip()
        self.timeout = timeout

    def relay(self, payload: Dict[str, Any]) -> bool:
        try:
            response = requests.post(
                self.endpoint,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException:
            log.warning("Mail relay request failed (non-blocking)", exc_info=True)
            return False
        if not response.ok:
            log.warning("Mail relay returned %s (non-blocking)", response.status_code)
            return False
        return True
