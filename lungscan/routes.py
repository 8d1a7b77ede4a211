"""API Routes for LungScan

- POST /api/detect - classify an uploaded scan, return overlay and PDF report
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.context import AppContext, get_context
from .core.errors import LungScanError, ServiceUnavailable
from .core.pipeline import detect
from .core.schemas import DetectionResult, ErrorResponse
from .core.utils import generate_request_id


logger = logging.getLogger(__name__)
router = APIRouter()

NO_IMAGE = "No image provided"
MODEL_NOT_LOADED = "Model not loaded"
CLASSIFICATION_FAILED = "Classification failed"


def _error(message: str, status_code: int, request_id: str) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(error=message).model_dump(),
        status_code=status_code,
        headers={"X-Request-ID": request_id},
    )


@router.post(
    "/detect",
    response_model=DetectionResult,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def detect_endpoint(request: Request, context: AppContext = Depends(get_context)):
    """
    Classify a lung-scan image sent as multipart field ``image``.

    Returns label, score, risk bucket, Grad-CAM overlay and PDF report.
    """
    request_id = generate_request_id()
    logger.info(f"Detection request {request_id} started")

    try:
        model = context.models.get()
    except ServiceUnavailable:
        logger.warning(f"Detection request {request_id} rejected: model not loaded")
        return _error(MODEL_NOT_LOADED, 500, request_id)

    try:
        form = await request.form()
    except StarletteHTTPException as e:
        logger.warning(f"Detection request {request_id} rejected: {e.detail}")
        return _error(NO_IMAGE, 400, request_id)

    image = form.get("image")
    if not isinstance(image, UploadFile):
        await form.close()
        return _error(NO_IMAGE, 400, request_id)

    try:
        raw_bytes = await image.read()
        detection = await detect(model, raw_bytes, image.content_type, context.settings)
    except LungScanError as e:
        logger.error(f"Detection request {request_id} failed: {type(e).__name__}: {e}")
        return _error(CLASSIFICATION_FAILED, 500, request_id)
    except Exception as e:
        logger.error(f"Detection request {request_id} failed: {e}", exc_info=True)
        return _error(CLASSIFICATION_FAILED, 500, request_id)
    finally:
        await form.close()

    logger.info(f"Detection request {request_id} completed successfully")
    return JSONResponse(
        detection.to_result().model_dump(mode="json", by_alias=True),
        headers={"X-Request-ID": request_id},
    )
