import json
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    app_name: str = "Back Office"
    debug: bool = False
    
    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/backoffice"
    log_to_file: bool = False
    
    # Database
    database_url: str = "sqlite:///./backoffice.db"
    database_echo: bool = False
    
    # Redis
    redis_url: str = "redis://localhost:6379/0"
    
    # Celery
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None
    
    @property
    def celery_broker(self) -> str:
        return self.celery_broker_url or self.redis_url
    
    @property
    def celery_backend(self) -> str:
        return self.celery_result_backend or self.redis_url
    
    # Approval workflows
    system_actor_email: str = "system@backoffice.local"
    auto_approve_sweep_minutes: int = 15
    reminder_sweep_minutes: int = 60
    reminder_intervals_hours: str = "24,72,168"  # 1, 3 and 7 days
    role_members: str = "{}"  # JSON: {"admin": ["owner@example.com"]}
    workflow_seed_file: Optional[str] = None
    
    @property
    def reminder_schedule(self) -> List[int]:
        return sorted(int(h) for h in self.reminder_intervals_hours.split(",") if h.strip())
    
    @property
    def role_members_map(self) -> Dict[str, List[str]]:
        members = json.loads(self.role_members or "{}")
        return {role: list(emails) for role, emails in members.items()}
    
    # Webhooks
    webhook_url: Optional[str] = None
    webhook_timeout: int = 30
    webhook_max_retries: int = 3
    
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
