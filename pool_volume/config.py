"""
配置加载模块

从 config.yaml 加载配置，支持 Pydantic 验证和环境变量覆盖。

环境变量使用 POOL_VOLUME_ 前缀，嵌套字段用双下划线分隔，例如：
    POOL_VOLUME_CACHE__REFRESH_INTERVAL=10
    POOL_VOLUME_CACHE__POOL_ADDRESSES='["addr1", "addr2"]'
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_POOL_ADDRESSES = [
    "6d4UYGAEs4Akq6py8Vb3Qv5PvMkecPLS1Z9bBCcip2R7",
    "CWjGo5jkduSW5LN5rxgiQ18vGnJJEKWPCXkpJGxKSQTH",
    "7xuPLn8Bun4ZGHeD95xYLnPKReKtSe7zfVRzRJWJZVZW",
]


class DatabaseConfig(BaseModel):
    """数据库配置"""
    path: str = "data/pool_volume.db"
    timeout: int = 30


class CacheConfig(BaseModel):
    """缓存服务配置"""
    host: str = "127.0.0.1"
    port: int = 3030
    pool_addresses: List[str] = Field(default_factory=lambda: list(DEFAULT_POOL_ADDRESSES))
    refresh_interval: float = 30.0
    window_seconds: int = 300


class ServerConfig(BaseModel):
    """对外查询服务配置"""
    host: str = "0.0.0.0"
    port: int = 8000
    cache_url: str = "http://127.0.0.1:3030/volume"
    cache_timeout: float = 5.0
    window_seconds: int = 300
    cors_origins: List[str] = ["*"]


class GeneratorConfig(BaseModel):
    """模拟交易生成配置"""
    enabled: bool = True
    pool_address: str = DEFAULT_POOL_ADDRESSES[0]
    interval: float = 0.02
    min_amount: float = 0.1
    max_amount: float = 10.0
    report_interval: float = 1.0


class ShutdownConfig(BaseModel):
    """优雅退出配置"""
    drain_timeout: float = 10.0


class LoggingConfig(BaseModel):
    """日志配置"""
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 50
    backup_count: int = 5


class AppConfig(BaseSettings):
    """应用配置（完整配置）"""

    model_config = SettingsConfigDict(
        env_prefix="POOL_VOLUME_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    shutdown: ShutdownConfig = Field(default_factory=ShutdownConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # 环境变量优先于 YAML 文件内容
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置文件

    优先级：
    1. 参数指定的路径
    2. 环境变量 POOL_VOLUME_CONFIG
    3. 默认路径 config.yaml
    """
    if config_path is None:
        config_path = os.environ.get("POOL_VOLUME_CONFIG", "config.yaml")

    config_file = Path(config_path)

    if config_file.exists():
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
            if raw_config:
                # Relative paths inside config.yaml are relative to the file itself.
                base_dir = config_file.resolve().parent

                def _resolve_path(value: Optional[str]) -> Optional[str]:
                    if not value:
                        return value
                    path = Path(value)
                    if path.is_absolute():
                        return str(path)
                    return str((base_dir / path).resolve())

                raw_config.setdefault("database", {})
                raw_config["database"]["path"] = _resolve_path(
                    raw_config["database"].get("path", DatabaseConfig().path)
                )

                raw_config.setdefault("logging", {})
                raw_config["logging"]["file"] = _resolve_path(raw_config["logging"].get("file"))

                return AppConfig(**raw_config)

    # 配置文件不存在时使用默认配置（仍然读取环境变量）
    return AppConfig()


# 全局配置实例（延迟加载）
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """获取全局配置实例（单例模式）"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: AppConfig):
    """替换全局配置（命令行 --config 指定的文件对后续 get_config() 生效）"""
    global _config
    _config = config


def reset_config():
    """重置配置（主要用于测试）"""
    global _config
    _config = None
