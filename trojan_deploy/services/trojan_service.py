import json
import os
from typing import Optional, Tuple

import aiofiles
import psutil
from pydantic import ValidationError

from trojan_deploy.core.config import Settings, settings as default_settings
from trojan_deploy.core.exceptions import ConfigError, DeployError, PrerequisiteError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.schemas.trojan import TrojanConfig, TrojanSSL, TrojanStatus
from trojan_deploy.services.nginx_service import NginxService
from trojan_deploy.services.systemd_service import SystemdService
from trojan_deploy.utils.shell import CommandRunner

logger = setup_logger(__name__)


class TrojanService:
    """Trojan配置与服务文件管理"""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        settings: Optional[Settings] = None,
        systemd: Optional[SystemdService] = None,
        nginx: Optional[NginxService] = None
    ):
        self.settings = settings or default_settings
        self.runner = runner or CommandRunner()
        self.systemd = systemd or SystemdService(self.runner, self.settings)
        self.nginx = nginx or NginxService(self.runner, self.settings, self.systemd)

    def build_config(self, password: str, port: int, ssl: TrojanSSL) -> TrojanConfig:
        return TrojanConfig(
            run_type="server",
            local_addr="::",
            local_port=port,
            remote_addr=self.settings.FALLBACK_ADDR,
            remote_port=self.settings.FALLBACK_PORT,
            password=[password],
            ssl=ssl
        )

    @staticmethod
    def dumps(config: TrojanConfig) -> str:
        return json.dumps(config.model_dump(), indent=4) + "\n"

    async def load_config(self) -> TrojanConfig:
        """读取现有的Trojan配置"""
        path = self.settings.TROJAN_CONFIG_PATH
        if not os.path.isfile(path):
            raise PrerequisiteError(
                f"未找到Trojan配置文件: {path}, Trojan是否已正确安装?"
            )

        async with aiofiles.open(path, "r") as f:
            content = await f.read()
        try:
            return TrojanConfig.model_validate(json.loads(content))
        except (ValueError, ValidationError) as e:
            raise ConfigError(f"无法从 {path} 检测当前端口或域名: {str(e)}") from e

    async def detect_installation(self) -> Tuple[TrojanConfig, int, str]:
        """检测当前配置中的端口和域名"""
        config = await self.load_config()
        domain = config.domain(self.settings.SSL_DIR)
        if not domain:
            raise ConfigError(
                f"无法从证书路径解析域名: {config.ssl.cert}"
            )
        return config, config.local_port, domain

    def render_unit(self) -> str:
        """生成Trojan的systemd服务文件"""
        return f"""[Unit]
Description=Trojan Server
After=network.target

[Service]
Type=simple
User=root
ExecStart={self.settings.TROJAN_BINARY} {self.settings.TROJAN_CONFIG_PATH}
Restart=on-failure
RestartSec=5s

[Install]
WantedBy=multi-user.target
"""

    async def get_status(self) -> TrojanStatus:
        """获取部署状态"""
        status = TrojanStatus(
            nginx_running=await self.systemd.is_active(self.settings.NGINX_SERVICE_NAME),
            trojan_running=await self.systemd.is_active(self.settings.TROJAN_SERVICE_NAME),
            system_info={
                "cpu_percent": psutil.cpu_percent(),
                "memory_percent": psutil.virtual_memory().percent,
                "disk_percent": psutil.disk_usage('/').percent
            }
        )

        try:
            _, status.port, status.domain = await self.detect_installation()
            site = await self.nginx.load_site(status.domain)
            status.redirect_port = site.redirect_port
        except DeployError as e:
            logger.warning(f"读取部署信息失败: {e.message}")

        status.consistent = (
            status.port is not None and status.port == status.redirect_port
        )
        return status
