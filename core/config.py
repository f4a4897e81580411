"""
Application configuration.

Values come from the environment (optionally a .env file). Each component
reads the settings it needs from the shared ``settings`` instance.
"""

import os
from typing import List

import dotenv

dotenv.load_dotenv()


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    """Runtime settings read from environment variables"""

    def __init__(self):
        # Auth
        self.jwt_secret = os.getenv("JWT_SECRET")
        self.jwt_expiry = int(os.getenv("JWT_EXPIRES_IN", "86400"))
        self.password_reset_expiry = int(os.getenv("PASSWORD_RESET_EXPIRY", "3600"))
        self.bcrypt_rounds = int(os.getenv("BCRYPT_ROUNDS", "12"))
        self.min_password_length = int(os.getenv("MIN_PASSWORD_LENGTH", "6"))
        self.expose_reset_token = _env_bool("EXPOSE_RESET_TOKEN")

        # Users
        self.default_credits = int(os.getenv("DEFAULT_CREDITS", "10"))
        self.admin_email = os.getenv("ADMIN_EMAIL")
        self.admin_password = os.getenv("ADMIN_PASSWORD")
        self.admin_name = os.getenv("ADMIN_NAME", "Administrator")

        # File storage
        self.upload_dir = os.getenv("UPLOAD_DIR", "./uploads")
        self.max_file_size = int(os.getenv("MAX_FILE_SIZE", str(50 * 1024 * 1024)))
        self.max_files_per_upload = int(os.getenv("MAX_FILES_PER_UPLOAD", "10"))
        self.azure_connection_string = os.getenv("AZURE_STORAGE_CONNECTION_STRING")
        self.azure_container = os.getenv("AZURE_BLOB_CONTAINER", "documents")

        # Logging
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_dir = os.getenv("LOG_DIR", "logs")

        # HTTP
        self.frontend_origins: List[str] = [
            origin.strip()
            for origin in os.getenv(
                "FRONTEND_ORIGINS", "http://localhost:5173,http://localhost:3000"
            ).split(",")
            if origin.strip()
        ]


settings = Settings()
