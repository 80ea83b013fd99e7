"""Configurações da aplicação - carrega variáveis do .env"""

from functools import lru_cache
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",  # carrega local
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===========================================
    # CORE
    # ===========================================
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///./cascata.db"
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_json: Optional[bool] = None  # None = JSON só em produção

    # ===========================================
    # SCHEDULER / SWEEPER
    # ===========================================
    scheduler_enabled: bool = True
    scheduler_timezone: str = "America/Sao_Paulo"
    sla_sweep_interval_seconds: int = Field(default=60, ge=30, le=3600)

    # ===========================================
    # SLA EM CASCATA
    # ===========================================
    cascade_default_sla_hours: int = Field(default=24, ge=1)
    cascade_critical_hours: int = 2  # painel: CRITICO abaixo disso
    cascade_warning_hours: int = 6   # painel: ALERTA abaixo disso

    # ===========================================
    # Z-API (WhatsApp)
    # ===========================================
    zapi_instance_id: Optional[str] = None
    zapi_token: Optional[str] = None

    # ===========================================
    # PROPRIEDADES
    # ===========================================
    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def json_logs(self) -> bool:
        if self.log_json is None:
            return self.is_production
        return self.log_json

    @property
    def zapi_configured(self) -> bool:
        """Verifica se Z-API está configurado."""
        return bool(self.zapi_instance_id and self.zapi_token)

    @property
    def async_database_url(self) -> str:
        # Railway fornece postgresql:// mas asyncpg precisa de postgresql+asyncpg://
        url = self.database_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()
