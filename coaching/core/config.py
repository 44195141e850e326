from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Attendance mutation windows, measured from marked_at
    attendance_edit_limit_hours: int = Field(24, alias="ATTENDANCE_EDIT_LIMIT_HOURS")
    attendance_delete_limit_hours: int = Field(48, alias="ATTENDANCE_DELETE_LIMIT_HOURS")

    # Periodic checks
    teacher_lateness_threshold_minutes: int = Field(10, alias="TEACHER_LATENESS_THRESHOLD_MINUTES")
    class_reminder_lead_minutes: int = Field(15, alias="CLASS_REMINDER_LEAD_MINUTES")
    scheduler_interval_seconds: int = Field(300, alias="SCHEDULER_INTERVAL_SECONDS")
    notification_retention_days: int = Field(30, alias="NOTIFICATION_RETENTION_DAYS")
    enable_background_tasks: bool = Field(True, alias="ENABLE_BACKGROUND_TASKS")

    # Batch schedules are wall-clock "HH:MM" in the center's local time
    center_timezone: str = Field("UTC", alias="CENTER_TIMEZONE")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    cors_origins: str = Field("*", alias="CORS_ORIGINS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
