from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    PROJECT_NAME: str = "JFT CBT"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./cbt.db"

    # Exam rules
    EXAM_DURATION_MINUTES: int = 60
    MAX_AUDIO_PLAYS: int = 2
    LISTENING_SECTION_NUMBER: int = 3
    PASS_SCORE_250: float = 125.0

    # Session persistence
    AUTOSAVE_INTERVAL_SECONDS: int = 10
    DEADLINE_SWEEP_INTERVAL_SECONDS: int = 5
    SESSION_IDLE_TTL_SECONDS: int = 60 * 60
    SUBMIT_MAX_RETRIES: int = 3
    SUBMIT_RETRY_DELAY_SECONDS: float = 0.5

    LOG_DIR: str = "logs"

    @property
    def EXAM_DURATION_SECONDS(self) -> int:
        return self.EXAM_DURATION_MINUTES * 60

    class Config:
        env_file = ".env"

settings = Settings()
