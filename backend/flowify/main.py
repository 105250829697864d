from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional
import logging

from fastapi import APIRouter, FastAPI, Depends, HTTPException, status, Query, Request, UploadFile, File
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException


from . import crud, schemas, ai_core
from .config import Settings, get_settings
from .database import Database
from .storage import AssetStorage

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"

router = APIRouter()

# --- Dependencies ---

def get_db_session(request: Request):
    """
    Dependency to get a new database session for each request.
    Ensures the session is closed after the request is finished.
    """
    yield from request.app.state.database.session()

def get_storage(request: Request) -> AssetStorage:
    return request.app.state.storage

def get_prediction_client(request: Request):
    try:
        return ai_core.create_prediction_client(request.app.state.settings)
    except ai_core.PredictionClientError as e:
        logger.error(f"Could not create prediction client: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

# --- Application Lifecycle ---

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Opens the database, creates tables if they don't exist and makes sure the
    placeholder upload owner exists. Disposes the engine on shutdown.
    """
    settings: Settings = app.state.settings
    database = Database(settings.database_url)
    logger.info("Application startup: attempting to create DB tables if they don't exist.")
    database.create_tables()
    with database.SessionLocal() as db:
        owner = crud.ensure_user(db, settings.placeholder_user_email)
        app.state.placeholder_user_id = owner.id
    app.state.database = database
    logger.info(f"Database ready; uploads owned by user {app.state.placeholder_user_id}.")

    yield

    database.dispose()
    logger.info("Database engine disposed on shutdown.")

# --- Error rendering ---

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "message": str(exc.detail), "status": "error"},
        headers=getattr(exc, "headers", None),
    )

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(f"{request.method} {request.url.path} - rejected invalid request: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": jsonable_encoder(exc.errors()),
            "message": "Invalid request body",
            "status": "error",
        },
    )


def _fail_modification(db: Session, db_asset, detail: str) -> HTTPException:
    asset_id = db_asset.id
    try:
        db.rollback()
        crud.mark_asset_failed(db, db_asset)
    except Exception as e:
        db.rollback()
        logger.error(f"Could not mark asset {asset_id} as failed: {e}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

# --- API Endpoints ---

@router.get("/", summary="Root Endpoint", description="Redirects to the bundled web UI.")
async def root():
    return RedirectResponse(url="/static/index.html")

@router.post(
    "/users",
    response_model=schemas.SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Sign Up",
    description="Creates a user from an email and password. Duplicate emails are rejected."
)
def signup(request: schemas.SignupRequest, db: Session = Depends(get_db_session)):
    logger.info(f"POST /users - Email: '{request.email}'")
    if crud.get_user_by_email(db, request.email) is not None:
        logger.warning(f"Signup rejected, email already registered: {request.email}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    try:
        db_user = crud.create_user(db, schemas.UserCreateInternal(email=request.email, password=request.password))
    except IntegrityError:
        db.rollback()
        logger.warning(f"Signup lost a race on email: {request.email}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving user to database: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database error while creating user: {str(e)}"
        )

    logger.info(f"Successfully created user ID: {db_user.id}")
    return schemas.SignupResponse(message="User created successfully", user_id=db_user.id)

@router.get(
    "/assets",
    response_model=List[schemas.AssetResponse],
    summary="List Assets",
    description="Retrieves uploaded assets, newest first, with pagination."
)
def list_assets(
    skip: int = Query(0, ge=0, description="Number of items to skip"),
    limit: int = Query(10, ge=1, le=100, description="Maximum number of items to return"),
    db: Session = Depends(get_db_session)
):
    logger.info(f"GET /assets - Skip: {skip}, Limit: {limit}")
    try:
        return crud.get_assets(db, skip=skip, limit=limit)
    except Exception as e:
        logger.error(f"Error fetching assets: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database error while fetching assets: {str(e)}"
        )

@router.get(
    "/assets/{asset_id}",
    response_model=schemas.AssetResponse,
    summary="Get Asset",
    description="Retrieves a single asset by its ID."
)
def read_asset(asset_id: int, db: Session = Depends(get_db_session)):
    logger.info(f"GET /assets/{asset_id}")
    db_asset = crud.get_asset(db, asset_id)
    if db_asset is None:
        logger.warning(f"Asset with ID {asset_id} not found.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    return db_asset

@router.post(
    "/assets",
    response_model=schemas.AssetUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Asset",
    description="Stores an uploaded image (multipart field 'image') and records its metadata."
)
def upload_asset(
    http_request: Request,
    image: UploadFile = File(..., description="Image file to upload"),
    db: Session = Depends(get_db_session),
    storage: AssetStorage = Depends(get_storage)
):
    original_filename = image.filename or "upload.bin"
    logger.info(f"POST /assets - File: '{original_filename}'")

    try:
        key = storage.save_upload(image.file, original_filename)
    except FileExistsError as e:
        logger.error(f"Stored path conflict for '{original_filename}': {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Asset path already exists")
    except OSError as e:
        logger.error(f"Failed to write upload '{original_filename}': {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save upload: {str(e)}"
        )

    asset_to_create = schemas.AssetCreateInternal(
        user_id=http_request.app.state.placeholder_user_id,
        original_filename=original_filename,
        uploaded_path=key
    )
    try:
        db_asset = crud.create_asset(db, asset_to_create)
    except IntegrityError as e:
        db.rollback()
        storage.delete(key)
        logger.error(f"Stored path conflict for '{key}': {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Asset path already exists")
    except Exception as e:
        db.rollback()
        storage.delete(key)
        logger.error(f"Error saving asset to database: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database error while saving asset: {str(e)}"
        )

    logger.info(f"Successfully created asset ID: {db_asset.id}")
    return schemas.AssetUploadResponse(
        message="File uploaded successfully",
        asset_id=db_asset.id,
        url=storage.url_for(key)
    )

@router.post(
    "/modify-image",
    response_model=schemas.ModifyImageResponse,
    summary="Modify Image with AI",
    description="Sends a stored image and a prompt to the image model and stores the result."
)
def modify_image(
    request: schemas.ModifyImageRequest,
    db: Session = Depends(get_db_session),
    storage: AssetStorage = Depends(get_storage),
    client=Depends(get_prediction_client)
):
    # Plain def: the outbound predict call blocks, so this runs on the threadpool
    logger.info(f"POST /modify-image - Asset: {request.asset_id}, Prompt: '{request.prompt[:50]}...'")
    db_asset = crud.get_asset(db, request.asset_id)
    if db_asset is None:
        logger.warning(f"Asset with ID {request.asset_id} not found.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")

    try:
        source_bytes = storage.read(db_asset.uploaded_path)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read source image for asset {db_asset.id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to read source image: {str(e)}"
        )

    try:
        crud.mark_asset_processing(db, db_asset, request.prompt)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating asset {request.asset_id} to processing: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database error while updating asset: {str(e)}"
        )

    # From here on every failure leaves the asset in 'failed'
    try:
        modified_bytes, mime_type = client.modify_image(source_bytes, request.prompt)
    except ai_core.PredictionError as e:
        logger.error(f"AI modification failed for asset {db_asset.id}: {e}", exc_info=True)
        raise _fail_modification(db, db_asset, str(e))
    except Exception as e:
        logger.error(f"Unexpected AI modification error for asset {db_asset.id}: {e}", exc_info=True)
        raise _fail_modification(db, db_asset, f"Unexpected error during AI modification: {str(e)}")

    modified_key = f"modified_{db_asset.id}{ai_core.extension_for(mime_type)}"
    try:
        storage.write(modified_key, modified_bytes)
    except OSError as e:
        logger.error(f"Failed to write modified image '{modified_key}': {e}", exc_info=True)
        raise _fail_modification(db, db_asset, f"Failed to save modified image: {str(e)}")

    try:
        crud.mark_asset_completed(db, db_asset, modified_key)
    except Exception as e:
        logger.error(f"Error updating asset {request.asset_id} to completed: {e}", exc_info=True)
        raise _fail_modification(db, db_asset, f"Database error while updating asset: {str(e)}")

    logger.info(f"Asset {db_asset.id} modified, stored as '{modified_key}'")
    return schemas.ModifyImageResponse(
        modified_image_url=storage.url_for(modified_key),
        message="Image modified successfully"
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(
        title="Flowify Backend",
        description="API for Flowify to register users, upload creative assets and modify them with a generative image model.",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.storage = AssetStorage(Path(settings.storage_dir))

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
    app.mount("/uploads", StaticFiles(directory=str(app.state.storage.root)), name="uploads")
    app.include_router(router)

    return app
