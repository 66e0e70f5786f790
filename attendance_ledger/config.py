from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Attendance Ledger'
    app_env: str = 'local'
    app_timezone: str = 'Africa/Lagos'
    database_url: str = 'sqlite:///./attendance_ledger.db'
    auth_secret: str = 'change-me'
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200
    # Unreadable lock state lets the write through. Needs compliance sign-off per deployment.
    attendance_lock_fail_open: bool = True
    attendance_bulk_max_records: int = 2000


settings = Settings()
