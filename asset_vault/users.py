import logging

from werkzeug.security import generate_password_hash

from asset_vault.errors import ConflictError, NotFoundError, require_text
from asset_vault.listing import SECRET_FIELDS, normalize_document
from asset_vault.mailer import Mailer, generate_verification_code
from asset_vault.repository import MetadataStore
from asset_vault.timestamps import utc_now_text

logger = logging.getLogger(__name__)

EMAIL_CONFIRMATION_SUBJECT = "Confirm your email"
PASSWORD_RESET_SUBJECT = "Reset your password"


def code_message(code: str, purpose: str) -> str:
    return f"<p>Your code to {purpose} is <strong>{code}</strong>.</p>"


class UserService:
    """User records keyed by email.

    Verification codes are generated, mailed and handed back to the caller;
    nothing here stores or checks them.
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        mailer: Mailer,
        *,
        users_collection: str = "users",
        tz_name: str = "Asia/Kolkata",
    ):
        self.metadata_store = metadata_store
        self.mailer = mailer
        self.users_collection = users_collection
        self.tz_name = tz_name

    def register(self, username: str, email: str, password: str) -> dict:
        username = require_text(username, "username")
        email = require_text(email, "email")
        password = require_text(password, "password")

        if self.metadata_store.find_one(self.users_collection, {"email": email}) is not None:
            raise ConflictError("user already exists")

        document = {
            "username": username,
            "email": email,
            "password": generate_password_hash(password),
            "is_email_verified": False,
            "created_at": utc_now_text(),
        }
        user_id = self.metadata_store.insert_one(self.users_collection, document)
        logger.info(f"Registered user {email}")
        return normalize_document({**document, "_id": user_id}, self.tz_name, strip=SECRET_FIELDS)

    def update_password(self, email: str, password: str) -> None:
        email = require_text(email, "email")
        password = require_text(password, "password")
        matched = self.metadata_store.update_one(
            self.users_collection, {"email": email}, {"password": generate_password_hash(password)}
        )
        if not matched:
            raise NotFoundError("user not found")

    def confirm_email(self, email: str) -> None:
        email = require_text(email, "email")
        if not self.metadata_store.update_one(self.users_collection, {"email": email}, {"is_email_verified": True}):
            raise NotFoundError("user not found")

    def send_email_confirmation_code(self, email: str) -> str:
        email = require_text(email, "email")
        code = generate_verification_code()
        self.mailer.send(email, EMAIL_CONFIRMATION_SUBJECT, code_message(code, "confirm your email"))
        return code

    def send_password_reset_code(self, email: str) -> str:
        email = require_text(email, "email")
        if self.metadata_store.find_one(self.users_collection, {"email": email}) is None:
            raise NotFoundError("user not found")
        code = generate_verification_code()
        self.mailer.send(email, PASSWORD_RESET_SUBJECT, code_message(code, "reset your password"))
        return code
