"""Transactional email through the Resend HTTP API.

Every send returns an EmailResult and never raises: a provider outage
must not leak into the lifecycle core. Subjects and bodies are kept here
so the dispatcher only deals in recipients and template data.
"""

from __future__ import annotations

import html
from typing import TYPE_CHECKING

import httpx
import structlog

from modelmagic.config import settings
from modelmagic.models.contracts import EmailResult

if TYPE_CHECKING:
    import uuid

logger = structlog.get_logger()

_BUTTON_STYLE = (
    "background-color: #4F46E5; color: white; padding: 12px 24px; "
    "text-decoration: none; border-radius: 6px; font-weight: bold;"
)


def _button(url: str, label: str) -> str:
    return (
        '<p style="text-align: center; margin: 30px 0;">'
        f'<a href="{html.escape(url, quote=True)}" style="{_BUTTON_STYLE}">{label}</a>'
        "</p>"
    )


def _short_id(project_id: uuid.UUID | str) -> str:
    return f"{str(project_id)[:8]}..."


class EmailService:
    """One coroutine per template. Pass `http_client` to reuse a connection pool."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_url: str | None = None,
        sender: str | None = None,
        app_name: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = settings.resend_api_key if api_key is None else api_key
        self._api_url = api_url or settings.resend_api_url
        self._sender = sender or settings.email_from
        self._app_name = app_name or settings.app_name
        self._timeout = timeout or settings.email_timeout_seconds
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if self._http_client is not None:
            return await self._http_client.post(
                self._api_url, json=payload, headers=headers, timeout=self._timeout
            )
        async with httpx.AsyncClient() as client:
            return await client.post(
                self._api_url, json=payload, headers=headers, timeout=self._timeout
            )

    async def _send(self, *, template: str, to: str, subject: str, body: str) -> EmailResult:
        if not self.configured:
            logger.warning("email_not_configured", template=template, to=to)
            return EmailResult(success=False, error="email_not_configured")

        payload = {"from": self._sender, "to": [to], "subject": subject, "html": body}
        try:
            response = await self._post(payload)
        except httpx.HTTPError as exc:
            logger.error(
                "email_send_failed", template=template, to=to, error_type=type(exc).__name__
            )
            return EmailResult(success=False, error=f"{type(exc).__name__}: {exc}")

        if response.status_code >= 400:
            logger.error(
                "email_rejected",
                template=template,
                to=to,
                status_code=response.status_code,
                body=response.text[:200],
            )
            return EmailResult(success=False, error=f"HTTP {response.status_code}")

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        logger.info("email_sent", template=template, to=to, message_id=message_id)
        return EmailResult(success=True, message_id=message_id)

    async def send_intake_confirmation(
        self, to: str, *, client_name: str, project_id: uuid.UUID | str, product_type: str
    ) -> EmailResult:
        body = (
            f"<h1>Thank you, {html.escape(client_name)}!</h1>"
            "<p>We've received your project request for "
            f"<strong>{html.escape(product_type)}</strong>.</p>"
            "<p>Our team will review your submission and get back to you shortly "
            "with package options and pricing.</p>"
            f"<p><strong>Project ID:</strong> {_short_id(project_id)}</p>"
        )
        return await self._send(
            template="intake_confirmation",
            to=to,
            subject=f"{self._app_name}: We received your project request!",
            body=body,
        )

    async def send_payment_request(
        self,
        to: str,
        *,
        client_name: str,
        project_id: uuid.UUID | str,
        package_type: str,
        payment_url: str,
    ) -> EmailResult:
        body = (
            f"<h1>Hi {html.escape(client_name)},</h1>"
            "<p>We've reviewed your project and prepared a package for you.</p>"
            f"<p><strong>Package:</strong> {html.escape(package_type)}</p>"
            "<p>Complete your payment to get started:</p>"
            f"{_button(payment_url, 'Complete Payment')}"
            f"<p>Project ID: {_short_id(project_id)}</p>"
        )
        return await self._send(
            template="payment_request",
            to=to,
            subject=f"{self._app_name}: Your package is ready - Complete payment",
            body=body,
        )

    async def send_assets_ready(
        self,
        to: str,
        *,
        client_name: str,
        project_id: uuid.UUID | str,
        asset_count: int,
        dashboard_url: str,
    ) -> EmailResult:
        body = (
            f"<h1>Hi {html.escape(client_name)},</h1>"
            "<p>Your AI model shots are ready for review.</p>"
            f"<p><strong>{asset_count} images</strong> are waiting for you.</p>"
            f"{_button(dashboard_url, 'Review Images')}"
            f"<p>Project ID: {_short_id(project_id)}</p>"
        )
        return await self._send(
            template="assets_ready",
            to=to,
            subject=f"{self._app_name}: Your model shots are ready for review!",
            body=body,
        )

    async def send_revision_notification(
        self,
        to: str,
        *,
        client_name: str,
        client_email: str,
        project_id: uuid.UUID | str,
        revision_notes: str,
        admin_url: str,
    ) -> EmailResult:
        body = (
            "<h1>Revision Request</h1>"
            f"<p><strong>Client:</strong> {html.escape(client_name)} "
            f"({html.escape(client_email)})</p>"
            f"<p><strong>Project ID:</strong> {project_id}</p>"
            "<h2>Revision Notes:</h2>"
            f"<blockquote>{html.escape(revision_notes)}</blockquote>"
            f"{_button(admin_url, 'View Project')}"
        )
        return await self._send(
            template="revision_notification",
            to=to,
            subject=f"{self._app_name}: Revision requested - {client_name}",
            body=body,
        )

    async def send_project_completed(
        self, to: str, *, client_name: str, project_id: uuid.UUID | str, dashboard_url: str
    ) -> EmailResult:
        body = (
            f"<h1>Congratulations, {html.escape(client_name)}!</h1>"
            "<p>Your project has been completed and all assets are ready for download.</p>"
            f"{_button(dashboard_url, 'Download Assets')}"
            f"<p>Project ID: {_short_id(project_id)}</p>"
        )
        return await self._send(
            template="project_completed",
            to=to,
            subject=f"{self._app_name}: Your project is complete!",
            body=body,
        )
