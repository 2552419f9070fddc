from fastapi import FastAPI, Depends, File, Request, UploadFile, status
import os
import shutil
import uuid
import logging
from datetime import datetime
from typing import Optional
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from converters.errors import ConversionError, InputMissingError
from file_conversion import ROUTES, ConversionPipeline, ConversionRoute
from utils.result import Result

settings = get_settings()

# Create logs directory if it doesn't exist
os.makedirs(settings.log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler so every module's records also land in the daily log file
log_file_path = os.path.join(settings.log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)


# Initialize FastAPI app with metadata
app = FastAPI(
    title="Tabular File Converter API",
    description="Convert uploaded Excel, CSV and JSON files to Excel, CSV, JSON, SQL or XML",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_pipeline() -> ConversionPipeline:
    """Pipeline bound to the configured temporary directory."""
    return ConversionPipeline(settings.temp_dir)


def save_upload(upload: UploadFile, temp_dir: str) -> str:
    """
    Store an uploaded file in the temporary directory.

    Args:
        upload: File received by the endpoint
        temp_dir: Target directory

    Returns:
        Path of the stored copy; a random prefix keeps concurrent uploads with
        the same name apart
    """
    os.makedirs(temp_dir, exist_ok=True)
    path = os.path.join(temp_dir, f"{uuid.uuid4().hex[:8]}-{os.path.basename(upload.filename)}")
    with open(path, "wb") as out:
        shutil.copyfileobj(upload.file, out)
    logger.info("Saved upload", extra={"upload_name": upload.filename, "upload_path": path})
    return path


def make_conversion_endpoint(route: ConversionRoute):
    """
    Build the handler for one entry of the route table.

    Every conversion shares the same flow, only ``route`` differs. The
    handler is a plain function so FastAPI runs it in its threadpool.
    """
    def convert_upload(
        file: Optional[UploadFile] = File(None),
        pipeline: ConversionPipeline = Depends(get_pipeline),
    ):
        if file is None or not file.filename:
            logger.warning("Request without file", extra={"conversion": route.path})
            result = Result.from_error(InputMissingError("No file uploaded."))
        else:
            filename = os.path.basename(file.filename)
            source_path = save_upload(file, pipeline.temp_dir)
            result = pipeline.convert(source_path, filename, route)

        # Single exit point
        if result.is_failure():
            return PlainTextResponse(result.error, status_code=result.status_code.value)
        output = result.data
        return FileResponse(
            output.path,
            media_type=output.artifact.media_type,
            filename=output.artifact.filename,
        )

    return convert_upload


for conversion_route in ROUTES.values():
    app.add_api_route(
        conversion_route.path,
        make_conversion_endpoint(conversion_route),
        methods=["POST"],
        tags=[conversion_route.tag],
        summary=conversion_route.summary,
        name=f"convert_{conversion_route.source.value}_to_{conversion_route.target.value}",
    )


@app.get("/", tags=["Default"])
async def health_check():
    """API health check."""
    return {"message": "API is Live!"}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "message": "API route does not exist"}
        )
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})


@app.exception_handler(ConversionError)
async def conversion_error_handler(request: Request, exc: ConversionError):
    logger.warning(f"Conversion error reached the API layer: {exc.message}", extra=exc.to_dict())
    return PlainTextResponse(exc.message, status_code=exc.status_code.value)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "status": 500, "message": str(exc)}
    )


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Tabular File Converter API.")
    uvicorn.run("main:app", host=settings.host, port=settings.port, reload=settings.reload)
