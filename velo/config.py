import os

VERSION = "1.0.0"
API_PREFIX = "/api"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./velo.db")
LOG_LEVEL = os.getenv("VELO_LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "VELO_CORS_ORIGINS", "http://localhost:4200,http://localhost:3000"
    ).split(",")
    if origin.strip()
]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
