"""
Receipt parsing endpoint.

POST /api/parse-receipt — multipart ``file``, or JSON ``{dataUrl}`` /
``{imageBase64, mimeType}``.  Returns the parsed receipt in decimal
units; nothing is stored.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from splitsmart.pipeline.receipt_parser import ReceiptParser, decode_image_payload
from splitsmart.schemas import ParseReceiptResponse
from splitsmart.services import get_receipt_parser

logger = logging.getLogger(__name__)
router = APIRouter()


async def _read_image(request: Request) -> tuple[bytes, str]:
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type:
        form = await request.form()
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise HTTPException(status_code=400, detail="file is required")
        data = await upload.read()
        if not data:
            raise HTTPException(status_code=400, detail="file is empty")
        return data, upload.content_type or "image/jpeg"

    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        return decode_image_payload(
            data_url=body.get("dataUrl"),
            image_base64=body.get("imageBase64"),
            mime_type=body.get("mimeType"),
        )

    raise HTTPException(status_code=400, detail="No image provided")


# ── POST /api/parse-receipt ──────────────────────────────────────────────
@router.post("/parse-receipt", response_model=ParseReceiptResponse)
async def parse_receipt(request: Request, parser: ReceiptParser = Depends(get_receipt_parser)):
    image, mime_type = await _read_image(request)
    logger.info("Parse receipt: %d bytes (%s)", len(image), mime_type)
    outcome = await run_in_threadpool(parser.parse, image, mime_type)
    logger.info("Parsed %d items with %s", len(outcome.receipt.items), outcome.model_used)
    return ParseReceiptResponse(model_used=outcome.model_used, result=outcome.receipt)
