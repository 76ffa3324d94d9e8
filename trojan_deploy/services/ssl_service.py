import asyncio
import os
import socket
from typing import Optional

import aiohttp

from trojan_deploy.core.config import Settings, settings as default_settings
from trojan_deploy.core.exceptions import CommandError, SSLError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.schemas.trojan import TrojanSSL
from trojan_deploy.services.systemd_service import SystemdService
from trojan_deploy.utils.shell import CommandRunner

logger = setup_logger(__name__)

CERTBOT_HINTS = [
    "1. 域名是否填写正确",
    "2. 域名是否已解析到当前服务器IP",
    "3. 80端口是否被其他程序占用",
]


class SSLService:
    """SSL证书服务"""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        settings: Optional[Settings] = None,
        systemd: Optional[SystemdService] = None
    ):
        self.settings = settings or default_settings
        self.runner = runner or CommandRunner(timeout=self.settings.COMMAND_TIMEOUT)
        self.systemd = systemd or SystemdService(self.runner, self.settings)

    def cert_paths(self, domain: str) -> TrojanSSL:
        cert_dir = os.path.join(self.settings.SSL_DIR, domain)
        return TrojanSSL(
            cert=os.path.join(cert_dir, "fullchain.pem"),
            key=os.path.join(cert_dir, "privkey.pem"),
            fallback_port=self.settings.FALLBACK_PORT
        )

    async def create_certificate(self, domain: str, email: str) -> TrojanSSL:
        """以standalone模式申请SSL证书, 申请前会停止Nginx以释放80端口"""
        if self.settings.CHECK_DNS and not await self._check_dns(domain):
            logger.warning(f"域名 {domain} 似乎未解析到当前服务器, 证书申请可能失败")

        await self.systemd.stop(self.settings.NGINX_SERVICE_NAME)

        logger.info(f"正在为 {domain} 申请SSL证书...")
        try:
            output = await self.runner.run([
                "certbot", "certonly", "--standalone",
                "-d", domain,
                "--non-interactive",
                "--agree-tos",
                "-m", email
            ])
        except CommandError as e:
            raise SSLError("Certbot申请SSL证书失败, 请检查:", hints=CERTBOT_HINTS) from e
        if output:
            logger.debug(f"Certbot输出: {output}")

        paths = self.cert_paths(domain)
        if not (os.path.exists(paths.cert) and os.path.exists(paths.key)):
            raise SSLError(f"证书文件未生成: {paths.cert}", hints=CERTBOT_HINTS)

        logger.info(f"SSL证书申请成功: {paths.cert}")
        return paths

    async def _check_dns(self, domain: str) -> bool:
        """检查域名DNS解析"""
        server_ip = await self._get_server_ip()
        if not server_ip:
            logger.warning("无法获取服务器公网IP, 跳过DNS检查")
            return True

        domain_ip = await self._get_domain_ip(domain)
        if not domain_ip:
            logger.error(f"无法获取域名 {domain} 的解析IP")
            return False

        return server_ip == domain_ip

    async def _get_server_ip(self) -> Optional[str]:
        """获取服务器公网IP"""
        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.settings.PUBLIC_IP_URL) as response:
                    return (await response.text()).strip()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"获取服务器IP失败: {str(e)}")
            return None

    async def _get_domain_ip(self, domain: str) -> Optional[str]:
        """获取域名解析IP"""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, socket.gethostbyname, domain)
        except OSError as e:
            logger.error(f"获取域名IP失败: {str(e)}")
            return None
