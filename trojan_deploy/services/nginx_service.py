import os
from typing import Optional

import aiofiles

from trojan_deploy.core.config import Settings, settings as default_settings
from trojan_deploy.core.exceptions import CommandError, NginxError, PrerequisiteError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.services.systemd_service import SystemdService
from trojan_deploy.utils.nginx_conf import NginxSiteConfig
from trojan_deploy.utils.shell import CommandRunner

logger = setup_logger(__name__)

PLACEHOLDER_PAGE = "<h1>Welcome to My Server</h1>\n"


class NginxService:
    """Nginx服务管理"""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        settings: Optional[Settings] = None,
        systemd: Optional[SystemdService] = None
    ):
        self.settings = settings or default_settings
        self.runner = runner or CommandRunner()
        self.systemd = systemd or SystemdService(self.runner, self.settings)

    def site_path(self, domain: str) -> str:
        return os.path.join(self.settings.NGINX_SITES_AVAILABLE, domain)

    def enabled_path(self, name: str) -> str:
        return os.path.join(self.settings.NGINX_SITES_ENABLED, name)

    def web_root(self, domain: str) -> str:
        return os.path.join(self.settings.WWW_ROOT, domain)

    def render_site_config(self, domain: str, port: int) -> str:
        """生成站点配置: HTTP跳转到Trojan端口, 以及本地回落站点"""
        fallback_addr = self.settings.FALLBACK_ADDR
        fallback_port = self.settings.FALLBACK_PORT
        return """# 1. HTTP -> HTTPS 跳转
server {
    listen 80;
    listen [::]:80;
    server_name %s;

    # 所有HTTP请求跳转到Trojan端口
    return 301 https://$host:%d$request_uri;
}

# 2. 非Trojan流量的回落站点
server {
    listen %s:%d;
    listen [::1]:%d;
    server_name %s;

    root %s;
    index index.html;

    location / {
        try_files $uri $uri/ =404;
    }
}
""" % (
            domain,
            port,
            fallback_addr,
            fallback_port,
            fallback_port,
            domain,
            self.web_root(domain)
        )

    async def prepare_web_root(self, domain: str):
        """创建站点目录和占位页面"""
        site_root = self.web_root(domain)
        os.makedirs(site_root, exist_ok=True)

        async with aiofiles.open(os.path.join(site_root, "index.html"), "w") as f:
            await f.write(PLACEHOLDER_PAGE)

        owner = f"{self.settings.WWW_USER}:{self.settings.WWW_USER}"
        try:
            await self.runner.run(["chown", "-R", owner, site_root])
        except CommandError as e:
            raise NginxError(f"设置站点目录权限失败: {site_root}") from e
        logger.info(f"站点目录已创建: {site_root}")

    async def load_site(self, domain: str) -> NginxSiteConfig:
        """读取并解析站点配置"""
        path = self.site_path(domain)
        if not os.path.isfile(path):
            raise PrerequisiteError(f"未找到Nginx配置文件: {path}")
        async with aiofiles.open(path, "r") as f:
            text = await f.read()
        return NginxSiteConfig(text)

    async def test_config(self):
        """验证Nginx配置"""
        try:
            await self.runner.run(["nginx", "-t"])
        except CommandError as e:
            raise NginxError(
                "Nginx配置测试失败, 请检查配置文件",
                hints=[e.stderr] if e.stderr else None
            ) from e
        logger.info("Nginx配置验证通过")

    async def reload(self):
        await self.systemd.reload(self.settings.NGINX_SERVICE_NAME)

    async def restart(self):
        await self.systemd.restart(self.settings.NGINX_SERVICE_NAME)
