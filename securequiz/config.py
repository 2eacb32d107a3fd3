"""
SecureQuiz Proctor Configuration Settings

All proctoring tunables live here: corroboration window, grace periods,
violation thresholds, penalty timing and LMS connectivity. Times are seconds.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Configuration for the proctoring service."""
    
    # API Settings
    APP_NAME: str = "SecureQuiz Proctor Service"
    DEBUG: bool = True
    PORT: int = 8002
    
    # LMS (attempt fetch / submit / quiz lock)
    LMS_BASE_URL: str = "http://localhost:5000"
    LMS_TIMEOUT: float = 15.0
    LMS_API_TOKEN: Optional[str] = None
    
    # Corroboration
    CORROBORATION_WINDOW: float = 0.8
    PROMOTION_DEBOUNCE: float = 2.0  # several channels report one departure
    
    # Grace periods
    STARTUP_GRACE_PERIOD: float = 8.0
    FULLSCREEN_ATTEMPT_GRACE_PERIOD: float = 2.0
    
    # Thresholds
    MAX_TAB_SWITCHES: int = 3
    MAX_FULLSCREEN_EXITS: int = 3
    
    # Penalty
    TAB_SWITCH_TIMEOUT: float = 15.0
    PENALTY_DURATION: int = 60
    FULLSCREEN_EXIT_RETURN_TIMEOUT: Optional[float] = None  # re-entry needs a user gesture
    FULLSCREEN_EXIT_PENALTY: int = 0
    
    # Detector timing
    STATE_POLL_INTERVAL: float = 0.5
    EXTENSION_SCAN_INTERVAL: float = 5.0
    FRAME_GAP_LOG_THRESHOLD: float = 5.0
    FRAME_GAP_SIGNAL_THRESHOLD: float = 10.0
    KEY_FOLLOWUP_DELAY: float = 0.1
    KEY_STATE_RESET: float = 2.0
    
    # Exclusive display mode
    FULLSCREEN_REENTRY_DELAY: float = 1.0
    FULLSCREEN_AVOIDANCE_DELAY: float = 10.0
    
    # Security gate
    GATE_MAX_RUNS: int = 2  # initial run + one re-run
    INCOGNITO_QUOTA_BYTES: int = 120_000_000
    
    # API registry
    FINALIZED_SESSION_LIMIT: int = 1000  # submitted sessions kept for status reads
    PENDING_GATE_LIMIT: int = 1000
    
    # Scoring
    DEFAULT_PASSING_SCORE: float = 60.0
    
    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
