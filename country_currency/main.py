import random
from fastapi import FastAPI, Depends, status, Query, Request
from fastapi.responses import JSONResponse, FileResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import List, Optional

from . import crud, schemas, services
from .config import settings
from .database import get_db, init_db, engine
from .exceptions import CountryAPIError, ConflictFailed, InternalFailure, NotFound, ValidationFailed
from .logging_config import setup_logging

logger = setup_logging()

# Create the FastAPI app
app = FastAPI(
    title="Country Currency & Exchange API",
    description="An API to fetch, cache, and serve country and currency data.",
    version="1.0.0"
)

# --- Dependencies ---

def get_rng() -> random.Random:
    """
    Random source for the GDP multiplier. Overridden in tests with a seeded generator.
    """
    return random.Random()

# --- Event Handlers ---

@app.on_event("startup")
async def on_startup():
    """
    Initialize the database tables on startup.
    """
    await init_db()
    logger.info("Country Currency API started")

@app.on_event("shutdown")
async def on_shutdown():
    """
    Close the database engine connection on shutdown.
    """
    await engine.dispose()
    logger.info("Country Currency API shutting down")

# --- Custom Error Handlers ---

@app.exception_handler(CountryAPIError)
async def country_api_error_handler(request: Request, exc: CountryAPIError):
    """
    Map the service's error taxonomy (503/400/404/500) to JSON responses.
    """
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle 400 validation errors to match the required format.
    """
    details = {}
    for error in exc.errors():
        field = error["loc"][-1] if len(error["loc"]) > 1 else "body"
        details[str(field)] = error["msg"]

    return await country_api_error_handler(request, ValidationFailed(details))

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Handle generic 404/other HTTP errors.
    """
    detail = "Route not found" if exc.status_code == status.HTTP_404_NOT_FOUND else exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": detail}
    )

@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    return await country_api_error_handler(request, ConflictFailed())

@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return await country_api_error_handler(request, InternalFailure("Database connection failed"))

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected 500 internal server errors.
    """
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )

# --- API Endpoints ---

@app.get("/", summary="API Information")
async def root():
    return {
        "message": "Country Currency API is running",
        "version": app.version,
        "endpoints": {
            "refresh": "POST /countries/refresh",
            "countries": "GET /countries",
            "country": "GET /countries/:name",
            "delete": "DELETE /countries/:name",
            "status": "GET /status",
            "image": "GET /countries/image",
        },
    }

@app.post(
    "/countries/refresh",
    response_model=schemas.RefreshResponse,
    summary="Refresh Country Data",
    description="Fetches data from external APIs, updates the database, and generates a summary image.",
    status_code=status.HTTP_200_OK
)
async def refresh_countries_data(
    db: AsyncSession = Depends(get_db),
    rng: random.Random = Depends(get_rng),
):
    """
    Endpoint to trigger the data refresh process.
    """
    # SourceUnavailable is mapped to 503 by the custom handler
    result = await services.refresh_countries(db, rng=rng)
    return schemas.RefreshResponse(**result.model_dump())

@app.get(
    "/countries",
    response_model=List[schemas.Country],
    summary="Get All Countries",
    description="Get a list of all countries from the database, with optional filtering and sorting."
)
async def get_all_countries(
    region: Optional[str] = Query(None, description="Filter by region (e.g., 'Africa')"),
    currency: Optional[str] = Query(
        None, min_length=3, max_length=3, description="Filter by currency code (e.g., 'NGN')"
    ),
    sort: Optional[schemas.SortOption] = Query(None, description="Sort order, defaults to name_asc"),
    db: AsyncSession = Depends(get_db)
):
    """
    Get all countries, with filters for region and currency.
    """
    return await crud.get_countries(db, region=region, currency=currency, sort=sort)

# Registered before /countries/{name} so "image" is not taken as a country name
@app.get(
    "/countries/image",
    summary="Get Summary Image",
    description="Serves the summary image generated during the last refresh."
)
async def get_summary_image():
    """
    Serve the generated summary image file.
    """
    image_path = settings.IMAGE_PATH
    if not image_path.is_file():
        raise NotFound("Summary image not found")
    return FileResponse(image_path, media_type="image/png")

@app.get(
    "/countries/{name}",
    response_model=schemas.Country,
    summary="Get Country by Name",
    description="Get a single country by its name (case-insensitive)."
)
async def get_country_by_name(name: str, db: AsyncSession = Depends(get_db)):
    """
    Get a single country by its name.
    """
    db_country = await crud.get_country_by_name(db, name=name)
    if db_country is None:
        raise NotFound("Country not found")
    return db_country

@app.delete(
    "/countries/{name}",
    response_model=schemas.MessageResponse,
    summary="Delete Country by Name",
    description="Delete a single country from the cache by its name.",
    status_code=status.HTTP_200_OK
)
async def delete_country(name: str, db: AsyncSession = Depends(get_db)):
    """
    Delete a country record from the database.
    """
    if not await crud.delete_country_by_name(db, name=name):
        raise NotFound("Country not found")
    return {"message": "Country deleted successfully"}

@app.get(
    "/status",
    response_model=schemas.StatusResponse,
    summary="Get API Status",
    description="Get the total number of cached countries and the last refresh timestamp."
)
async def get_status(db: AsyncSession = Depends(get_db)):
    """
    Get the application's status.
    """
    total = await crud.get_countries_count(db)
    last_refreshed_at = await crud.get_last_refreshed_at(db)
    return {"total_countries": total, "last_refreshed_at": last_refreshed_at}
