"""应用配置。所有环境变量集中管理。时长单位均为秒。"""
from __future__ import annotations
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # === App ===
    app_env: str = "development"
    app_title: str = "Instance Registry"
    log_level: str = "INFO"
    http_host: str = "0.0.0.0"
    http_port: int = 3030

    # === Redis ===
    redis_url: str = "redis://localhost:6379/0"
    redis_sentinel_hosts: str = ""
    redis_sentinel_master: str = "redismaster"
    empty_db: bool = False

    # === Registry ===
    gc_interval: float = 60.0
    # MAX_AGE 为旧部署使用的变量名
    instance_timeout: float = Field(
        60.0, validation_alias=AliasChoices("instance_timeout", "max_age"),
    )
    mutex_timeout: float = 2.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
