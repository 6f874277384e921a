from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "asset-vault"
    app_env: str = "dev"
    log_level: str = "INFO"

    storage_backend: str = "local"
    storage_dir: str = "uploads/blobs"
    public_base_url: str = "http://localhost:8000/blobs"
    s3_bucket_name: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None

    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "asset_vault"
    assets_collection: str = "assets"
    users_collection: str = "users"

    max_upload_size_bytes: int = 10 * 1024 * 1024
    upload_tmp_dir: str = "uploads/tmp"
    default_page_size: int = 50
    select_limit: int = 10
    display_timezone: str = "Asia/Kolkata"

    resend_api_key: str = ""
    mail_from: str = "Asset Vault <no-reply@example.com>"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="AV_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
