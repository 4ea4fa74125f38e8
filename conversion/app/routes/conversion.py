import time
from typing import Dict, Optional, Tuple
from urllib.parse import quote

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ..models.artifacts import ConversionResponse
from ..utils.errors import ConversionError, ErrorKind, ServiceError
from ..utils.logging import logger

router = APIRouter(prefix="/api/convert", tags=["Conversion"])
health_router = APIRouter(prefix="/api", tags=["Health"])


ERROR_RESPONSES: Dict[ErrorKind, Tuple[int, str]] = {
    ErrorKind.missing_file: (400, "No file uploaded. Send one image in the 'image' field."),
    ErrorKind.unsupported_type: (400, "Invalid file type. Only JPG and PNG images are allowed."),
    ErrorKind.size_limit: (400, "File too large. The maximum upload size is 10 MB."),
    ErrorKind.invalid_identifier: (400, "Invalid filename."),
    ErrorKind.permission_denied: (403, "PDF file is not readable."),
    ErrorKind.not_found: (404, "PDF file not found on server."),
    ErrorKind.conversion: (500, "Failed to convert image to PDF."),
    ErrorKind.storage_access: (500, "Storage is not accessible."),
}


def error_response(error: ServiceError) -> JSONResponse:
    status_code, message = ERROR_RESPONSES[error.kind]
    if error.kind == ErrorKind.size_limit and "max_bytes" in error.context:
        message = f"File too large. The maximum upload size is {error.context['max_bytes'] // (1024 * 1024)} MB."
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "error": error.kind.value}
    )


def content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


@router.post("", status_code=201, response_model=ConversionResponse)
@router.post("/", status_code=201, response_model=ConversionResponse, include_in_schema=False)
async def convert_image(request: Request, image: Optional[UploadFile] = File(None)):
    """Upload one JPEG/PNG image under the ``image`` field and convert it to a PDF."""
    start_time = time.time()
    services = request.app.state

    logger.log_step("conversion_request_received", {
        "method": request.method,
        "url": str(request.url),
        "client": request.client.host if request.client else "unknown",
        "filename": image.filename if image else None
    })

    staged = await services.upload_receiver.stage(image)

    try:
        artifact = await run_in_threadpool(services.converter.convert_staged, staged)
    except ServiceError:
        raise
    except Exception as exc:
        raise ConversionError(reason=type(exc).__name__, detail=str(exc)) from exc

    record_id = await run_in_threadpool(
        services.catalog.record,
        staged.original_name,
        artifact.generated_id,
        artifact.relative_path,
    )

    logger.log_step("conversion_request_completed", {
        "generated_id": artifact.generated_id,
        "record_id": record_id,
        "process_time": time.time() - start_time
    })

    return ConversionResponse(
        message="Image uploaded and converted successfully",
        pdfPath=artifact.relative_path,
        pdfFilename=artifact.path.name,
        recordId=record_id,
    )


@router.get("/download/{filename:path}")
async def download_pdf(request: Request, filename: str):
    """Stream a previously converted PDF as an attachment."""
    resolver = request.app.state.download_resolver

    logger.log_step("download_request_received", {
        "filename": filename,
        "client": request.client.host if request.client else "unknown"
    })

    path = await run_in_threadpool(resolver.resolve, filename)
    stream = resolver.open_stream(path)

    return StreamingResponse(
        stream,
        media_type="application/pdf",
        headers={"Content-Disposition": content_disposition(filename)}
    )


@router.delete("/download/{filename:path}", status_code=204)
async def delete_pdf(request: Request, filename: str):
    """Remove a PDF and its catalog record ahead of expiry."""
    await run_in_threadpool(request.app.state.download_resolver.remove, filename)
    return Response(status_code=204)


@health_router.get("/health")
async def health_check(request: Request):
    return {
        "status": "healthy",
        "agent": "conversion_agent",
        "catalog_connected": request.app.state.catalog.available
    }
