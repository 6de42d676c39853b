import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # Storage
    data_file: str = os.getenv("LIBRARY_DATA_FILE", "library.dat")
    export_file: str = os.getenv("LIBRARY_EXPORT_FILE", "library_export.csv")

    # Loans
    loan_days: int = int(os.getenv("LOAN_DAYS", "14"))

    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "WARNING").upper()

    # Application
    app_name: str = os.getenv("APP_NAME", "Library Catalog")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")


settings = Settings()
