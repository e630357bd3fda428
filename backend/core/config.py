# backend/core/config.py
import os
from typing import List, Literal
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - STORE_BACKEND where room/user records and chat logs live: "file" or "redis"
        - DATA_DIR root directory of the file store (users/, rooms/, chatlogs/)
        - REDIS_* connection details of the redis store
        - HOST / PORT where uvicorn listens
        - CORS_ORIGINS comma separated list of allowed origins
        - ROOM_ID_BYTES random bytes behind a generated room id
        - CLIENT_RETRY_DELAY seconds the long-poll client waits after a failed poll
    """

    # Load environment variables from the .env file
    load_dotenv()

    STORE_BACKEND: Literal["file", "redis"] = os.getenv("STORE_BACKEND", "file")
    DATA_DIR: str = os.getenv("DATA_DIR", "slimchat")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = os.getenv("REDIS_SSL", "false").lower() == "true"

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8080"))
    CORS_ORIGINS: List[str] = os.getenv("CORS_ORIGINS", "*").split(",")

    ROOM_ID_BYTES: int = int(os.getenv("ROOM_ID_BYTES", "24"))
    CLIENT_RETRY_DELAY: float = float(os.getenv("CLIENT_RETRY_DELAY", "1.0"))

settings = Settings()
