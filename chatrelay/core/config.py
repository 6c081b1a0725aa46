# chatrelay/core/config.py
import os
from typing import List
from dotenv import load_dotenv


def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


class Settings:
    """
    Setup environment variables.
        - HOST / PORT where uvicorn binds the relay
        - LOG_LEVEL root logger level
        - CORS_ORIGINS comma separated list of allowed origins ("*" for any)
        - ROOM_CAPACITY maximum concurrent members per room
        - ROOM_CODE_LENGTH length of generated room codes
        - OUTBOUND_QUEUE_SIZE pending envelopes per connection before it is
          treated as not writable
        - PENDING_ROOM_TTL_SECONDS how long a created room may wait for its
          first join (0 disables expiry)
        - PENDING_SWEEP_INTERVAL_SECONDS how often stale rooms are swept
    """

    # Load environment variables from the .env file
    load_dotenv()

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "5000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS: List[str] = _split_origins(os.getenv("CORS_ORIGINS", "*"))

    ROOM_CAPACITY: int = int(os.getenv("ROOM_CAPACITY", "10"))
    ROOM_CODE_LENGTH: int = int(os.getenv("ROOM_CODE_LENGTH", "6"))
    OUTBOUND_QUEUE_SIZE: int = int(os.getenv("OUTBOUND_QUEUE_SIZE", "256"))

    PENDING_ROOM_TTL_SECONDS: float = float(os.getenv("PENDING_ROOM_TTL_SECONDS", "3600"))
    PENDING_SWEEP_INTERVAL_SECONDS: float = float(os.getenv("PENDING_SWEEP_INTERVAL_SECONDS", "60"))

settings = Settings()
