"""Helpers shared by the aiohttp-based vendor clients."""

import json
import logging

from typing import Any, Dict, Optional, Tuple

import aiohttp

logger = logging.getLogger(__name__)


async def read_error_message(response: aiohttp.ClientResponse) -> str:
    """Extract the vendor's own error message from a failed response.

    Understands ``{"error": {"message": ...}}``, ``{"message": ...}`` and
    ``{"errors": [...]}`` bodies, and falls back to the raw text.
    """
    body = await response.text()
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip() or response.reason or f"HTTP {response.status}"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])
        if data.get("errors"):
            return "; ".join(str(e) for e in data["errors"])
    return body.strip()


def multipart_form(fields: Dict[str, Any],
                   files: Optional[Dict[str, Tuple[bytes, str, str]]] = None) -> aiohttp.MultipartWriter:
    """Build a multipart/form-data body, even when every field is plain text.

    Args:
        fields: Text fields, values are converted with ``str``
        files: Mapping of field name to ``(content, filename, content_type)``
    """
    writer = aiohttp.MultipartWriter("form-data")
    for name, value in fields.items():
        part = writer.append(str(value))
        part.set_content_disposition("form-data", name=name)
    for name, (content, filename, content_type) in (files or {}).items():
        part = writer.append(content, {"Content-Type": content_type})
        part.set_content_disposition("form-data", name=name, filename=filename)
    return writer
