import logging
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from asset_vault.config import Settings, get_settings
from asset_vault.errors import AssetVaultError
from asset_vault.listing import list_assets
from asset_vault.mailer import Mailer, build_mailer
from asset_vault.models import (
    AssetPage,
    DeleteRequest,
    DeletionResult,
    LocalFile,
    PasswordUpdateRequest,
    PurgeResult,
    RegisterRequest,
    UploadResult,
    VerificationCodeResponse,
)
from asset_vault.reconciler import AssetReconciler, release_temp_file
from asset_vault.repository import MetadataStore, build_metadata_store
from asset_vault.storage import BlobStore, build_blob_store
from asset_vault.users import UserService

logger = logging.getLogger(__name__)


def spool_upload(source: UploadFile, tmp_dir: Path, max_size_bytes: int) -> LocalFile:
    target = tmp_dir / f"{uuid4().hex}{Path(source.filename or '').suffix}"
    total = 0
    with target.open("wb") as f:
        while True:
            chunk = source.file.read(1024 * 1024)
            if not chunk:
                break
            total += len(chunk)
            if total > max_size_bytes:
                f.close()
                target.unlink(missing_ok=True)
                raise ValueError(f"{source.filename} exceeds max upload size")
            f.write(chunk)
    return LocalFile(path=str(target), filename=source.filename or target.name, size=total, content_type=source.content_type)


def create_app(
    settings: Settings | None = None,
    *,
    blob_store: BlobStore | None = None,
    metadata_store: MetadataStore | None = None,
    mailer: Mailer | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    blob_store = blob_store or build_blob_store(settings)
    metadata_store = metadata_store or build_metadata_store(settings)
    mailer = mailer or build_mailer(settings)

    reconciler = AssetReconciler(
        blob_store,
        metadata_store,
        assets_collection=settings.assets_collection,
        users_collection=settings.users_collection,
    )
    users = UserService(
        metadata_store,
        mailer,
        users_collection=settings.users_collection,
        tz_name=settings.display_timezone,
    )
    tmp_dir = Path(settings.upload_tmp_dir)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        tmp_dir.mkdir(parents=True, exist_ok=True)
        blob_store.init()
        metadata_store.init()
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "service": settings.app_name}

    def error_response(status_code: int, message: str, code: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": code, "message": message}},
        )

    @app.exception_handler(AssetVaultError)
    async def asset_vault_exception_handler(_: Request, exc: AssetVaultError):
        return error_response(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        missing_fields = [
            ".".join(str(item) for item in error["loc"] if item != "body")
            for error in exc.errors()
            if error.get("type") == "missing"
        ]
        if missing_fields:
            message = f"missing parameters: {', '.join(missing_fields)}"
        else:
            message = "invalid request parameters"
        return error_response(400, message, "bad_request")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            404: "not_found",
            409: "conflict",
            413: "payload_too_large",
        }
        return error_response(exc.status_code, message, code_map.get(exc.status_code, "error"))

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "environment": settings.app_env}

    @app.post("/v1/assets/upload", response_model=UploadResult, status_code=201)
    def upload_assets(email: str = Form(...), files: list[UploadFile] = File(...)):
        spooled: list[LocalFile] = []
        try:
            for upload in files:
                spooled.append(spool_upload(upload, tmp_dir, settings.max_upload_size_bytes))
        except ValueError as exc:
            for local_file in spooled:
                release_temp_file(local_file.path)
            logger.warning(f"Rejected upload for {email}: {exc}")
            raise HTTPException(status_code=413, detail=str(exc)) from exc

        try:
            return reconciler.upload_assets(email, spooled)
        finally:
            # already gone unless the reconciler rejected the request up front
            for local_file in spooled:
                release_temp_file(local_file.path)

    @app.get("/v1/users/{email}/assets", response_model=AssetPage)
    def list_owner_assets(email: str, page: int = Query(1), page_size: int | None = Query(None)):
        return list_assets(
            metadata_store,
            email,
            page,
            settings.default_page_size if page_size is None else page_size,
            select_limit=settings.select_limit,
            tz_name=settings.display_timezone,
            assets_collection=settings.assets_collection,
            users_collection=settings.users_collection,
        )

    @app.post("/v1/assets/delete", response_model=DeletionResult)
    def delete_assets(payload: DeleteRequest):
        return reconciler.delete_assets(payload.assets)

    @app.delete("/v1/users/{email}", response_model=PurgeResult)
    def purge_user(email: str):
        return reconciler.purge_owner(email)

    @app.post("/v1/users", status_code=201)
    def register_user(payload: RegisterRequest) -> dict:
        return users.register(payload.username, payload.email, payload.password)

    @app.put("/v1/users/{email}/password")
    def update_password(email: str, payload: PasswordUpdateRequest) -> dict:
        users.update_password(email, payload.password)
        return {"message": "password updated"}

    @app.post("/v1/users/{email}/verification-code", response_model=VerificationCodeResponse)
    def send_verification_code(email: str):
        return VerificationCodeResponse(email=email, code=users.send_email_confirmation_code(email))

    @app.post("/v1/users/{email}/verify-email")
    def verify_email(email: str) -> dict:
        users.confirm_email(email)
        return {"message": "email verified"}

    @app.post("/v1/users/{email}/password-reset-code", response_model=VerificationCodeResponse)
    def send_password_reset_code(email: str):
        return VerificationCodeResponse(email=email, code=users.send_password_reset_code(email))

    return app


app = create_app()
