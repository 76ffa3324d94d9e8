from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """系统配置"""

    # 项目信息
    PROJECT_NAME: str = "Trojan Deploy API"
    API_V1_STR: str = "/api/v1"

    # Trojan配置
    TROJAN_CONFIG_PATH: str = "/etc/trojan/config.json"
    TROJAN_SERVICE_PATH: str = "/etc/systemd/system/trojan.service"
    TROJAN_BINARY: str = "/usr/bin/trojan"
    TROJAN_SERVICE_NAME: str = "trojan"

    # Nginx配置
    NGINX_SERVICE_NAME: str = "nginx"
    NGINX_SITES_AVAILABLE: str = "/etc/nginx/sites-available"
    NGINX_SITES_ENABLED: str = "/etc/nginx/sites-enabled"
    WWW_ROOT: str = "/var/www"
    WWW_USER: str = "www-data"

    # 回落站点(非Trojan流量)
    FALLBACK_ADDR: str = "127.0.0.1"
    FALLBACK_PORT: int = 8080

    # SSL配置
    SSL_DIR: str = "/etc/letsencrypt/live"
    CHECK_DNS: bool = True
    PUBLIC_IP_URL: str = "https://api.ipify.org"

    # 软件包
    REQUIRED_PACKAGES: List[str] = [
        "nginx", "trojan", "certbot", "python3-certbot-nginx", "curl"
    ]
    APT_UPGRADE: bool = True

    # 命令执行
    COMMAND_TIMEOUT: int = 600
    SERVICE_SETTLE_SECONDS: float = 2.0

    # 日志配置
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True

    # CORS配置
    BACKEND_CORS_ORIGINS: list = ["*"]

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")


# 创建设置实例
settings = Settings()
