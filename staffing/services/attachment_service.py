"""Resume attachments and e-mail sending through the backend mail API."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlparse

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/v1/email/attachments/upload"
SEND_PATH = "/api/v1/email/send-individual-with-attachments"

SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


class AttachmentError(Exception):
    """Raised when an attachment upload or mail send fails."""
    pass


@dataclass
class AttachmentInfo:
    id: str
    filename: str
    size: int
    type: str
    url: str | None = None
    engineer_id: str | None = None
    engineer_name: str | None = None


def get_file_extension(url: str) -> str | None:
    """Extension of the URL path, or None."""
    path = urlparse(url).path
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return None
    return name.rsplit(".", 1)[-1] or None


def format_file_size(size: int) -> str:
    """Human readable size: ``1536 -> "1.5 KB"``."""
    if size <= 0:
        return "0 Bytes"
    i = min(int(math.floor(math.log(size, 1024))), len(SIZE_UNITS) - 1)
    value = round(size / 1024 ** i, 2)
    return f"{value:g} {SIZE_UNITS[i]}"


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict):
        return body.get("message") or body.get("detail") or default
    return default


class AttachmentService:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.backend.api_url).rstrip("/")
        self.api_key = settings.backend.api_key if api_key is None else api_key
        self.timeout = timeout or settings.backend.timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def upload_resume_from_url(
        self,
        tenant_id: str,
        engineer_id: str,
        engineer_name: str,
        resume_url: str,
    ) -> AttachmentInfo:
        """Download a stored resume and re-upload it as a mail attachment.

        Args:
            tenant_id: Tenant the attachment belongs to
            engineer_id: Engineer the resume belongs to
            engineer_name: Used for the attachment file name
            resume_url: Public URL of the stored resume

        Returns:
            AttachmentInfo of the uploaded file

        Raises:
            AttachmentError: If download or upload fails
        """
        extension = get_file_extension(resume_url) or "pdf"
        filename = f"{engineer_name}_履歴書.{extension}"

        try:
            async with self._client() as client:
                download = await client.get(resume_url)
                if download.is_error:
                    raise AttachmentError("履歴書ファイルの取得に失敗しました")

                content_type = download.headers.get("content-type", "application/octet-stream")
                response = await client.post(
                    f"{self.base_url}{UPLOAD_PATH}",
                    headers={"accept": "application/json", "X-API-Key": self.api_key},
                    data={"tenant_id": tenant_id},
                    files={"file": (filename, download.content, content_type)},
                )
        except httpx.HTTPError as e:
            logger.error(f"Resume upload for engineer {engineer_id} failed: {e}")
            raise AttachmentError(f"ファイルのアップロードに失敗しました: {e}") from e

        if response.is_error:
            raise AttachmentError(_error_message(response, "ファイルのアップロードに失敗しました"))

        result = response.json()
        if not result.get("attachment_id") or result.get("status") != "uploaded":
            raise AttachmentError(result.get("message") or "アップロード結果が不正です")

        logger.info(f"Uploaded resume {result['attachment_id']} for engineer {engineer_id}")
        return AttachmentInfo(
            id=result["attachment_id"],
            filename=result.get("filename", filename),
            size=result.get("file_size", 0),
            type=result.get("content_type", content_type),
            url=result.get("upload_url") or None,
            engineer_id=engineer_id,
            engineer_name=engineer_name,
        )

    async def send_email_with_attachments(
        self,
        tenant_id: str,
        to: list[str],
        subject: str,
        body: str,
        attachment_ids: list[str],
        attachment_filenames: list[str],
        *,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        signature: str | None = None,
    ) -> dict:
        """Queue an individual e-mail with attachments.

        The signature is appended after a blank line; the HTML body uses
        ``<br>`` for line breaks.

        Returns:
            ``{"queue_id", "status", "message"}`` from the mail API

        Raises:
            AttachmentError: If the mail API rejects the request
        """
        body_text = f"{body}\n\n{signature}" if signature else body
        body_html = body.replace("\n", "<br>")
        if signature:
            body_html = f"{body_html}<br><br>{signature.replace(chr(10), '<br>')}"

        payload = {
            "tenant_id": tenant_id,
            "to_emails": to,
            "subject": subject,
            "body_text": body_text,
            "body_html": body_html,
            "scheduled_at": datetime.now(timezone.utc).isoformat(),
            "attachment_ids": attachment_ids,
            "attachment_filenames": attachment_filenames,
        }
        if cc:
            payload["cc_emails"] = cc
        if bcc:
            payload["bcc_emails"] = bcc

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}{SEND_PATH}",
                    headers={"accept": "application/json", "X-API-Key": self.api_key},
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"Sending mail to {len(to)} recipients failed: {e}")
            raise AttachmentError(f"メール送信に失敗しました: {e}") from e

        if response.is_error:
            raise AttachmentError(_error_message(response, "メール送信に失敗しました"))

        result = response.json()
        return {
            "queue_id": result.get("queue_id"),
            "status": result.get("status"),
            "message": result.get("message"),
        }
