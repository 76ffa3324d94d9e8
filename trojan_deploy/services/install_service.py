import os
from typing import Optional

from pydantic import ValidationError

from trojan_deploy.core.config import Settings, settings as default_settings
from trojan_deploy.core.exceptions import InvalidInputError, PrivilegeError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.schemas.deploy import InstallRequest, InstallResult
from trojan_deploy.services.firewall_service import FirewallService
from trojan_deploy.services.nginx_service import NginxService
from trojan_deploy.services.package_service import PackageService
from trojan_deploy.services.ssl_service import SSLService
from trojan_deploy.services.systemd_service import SystemdService
from trojan_deploy.services.trojan_service import TrojanService
from trojan_deploy.utils.shell import CommandRunner
from trojan_deploy.utils.transaction import ConfigTransaction
from trojan_deploy.utils.validators import generate_password, parse_port

logger = setup_logger(__name__)


def build_install_request(domain: str, password: Optional[str], port, email: str) -> InstallRequest:
    """从交互输入构造安装请求"""
    if not (domain or "").strip():
        raise InvalidInputError("域名不能为空")
    port = parse_port(port)
    if port == 80:
        raise InvalidInputError("端口号无效, 不能为80")
    if not (email or "").strip():
        raise InvalidInputError("申请SSL证书必须提供邮箱地址")
    try:
        return InstallRequest(domain=domain, password=password or None, port=port, email=email)
    except ValidationError as e:
        raise InvalidInputError(f"参数无效: {e.errors()[0]['msg']}") from e


class InstallService:
    """Trojan + Nginx + SSL 安装流程"""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or default_settings
        self.runner = runner or CommandRunner(timeout=self.settings.COMMAND_TIMEOUT)
        self.packages = PackageService(self.runner, self.settings)
        self.firewall = FirewallService(self.runner)
        self.systemd = SystemdService(self.runner, self.settings)
        self.ssl_service = SSLService(self.runner, self.settings, self.systemd)
        self.nginx_service = NginxService(self.runner, self.settings, self.systemd)
        self.trojan_service = TrojanService(
            self.runner, self.settings, self.systemd, self.nginx_service
        )

    async def install(self, request: InstallRequest) -> InstallResult:
        """安装并启动Trojan"""
        if not self.runner.is_root():
            raise PrivilegeError("必须以root权限运行, 请使用 sudo")

        domain = request.domain
        port = request.port
        password = request.password
        if not password:
            password = generate_password(16)
            logger.info(f"已生成随机密码: {password}")

        logger.info(f"开始安装Trojan - 域名: {domain}, 端口: {port}")

        # 1. 安装软件包
        await self.packages.install(self.settings.REQUIRED_PACKAGES)

        # 2. 防火墙
        logger.info("配置防火墙...")
        await self.firewall.allow(80)
        await self.firewall.allow(port)
        await self.firewall.enable()

        # 3. SSL证书
        ssl = await self.ssl_service.create_certificate(domain, request.email)

        # 4. 站点目录
        await self.nginx_service.prepare_web_root(domain)

        # 5. 写入配置文件
        site_path = self.nginx_service.site_path(domain)
        config = self.trojan_service.build_config(password, port, ssl)
        async with ConfigTransaction() as tx:
            await tx.stage_write(site_path, self.nginx_service.render_site_config(domain, port))
            tx.stage_symlink(site_path, self.nginx_service.enabled_path(domain))
            default_site = self.nginx_service.enabled_path("default")
            if os.path.islink(default_site):
                tx.stage_unlink(default_site)
            await tx.stage_write(
                self.settings.TROJAN_CONFIG_PATH,
                self.trojan_service.dumps(config)
            )
            await tx.stage_write(
                self.settings.TROJAN_SERVICE_PATH,
                self.trojan_service.render_unit()
            )
            await tx.commit(validators=[self.nginx_service.test_config])
        logger.info(f"配置文件已写入: {site_path}, {self.settings.TROJAN_CONFIG_PATH}")

        # 6. 启动服务
        logger.info("重新加载systemd并启动服务...")
        nginx_unit = self.settings.NGINX_SERVICE_NAME
        trojan_unit = self.settings.TROJAN_SERVICE_NAME
        await self.systemd.daemon_reload()
        await self.nginx_service.restart()
        await self.systemd.enable(trojan_unit)
        await self.systemd.restart(trojan_unit)
        await self.systemd.verify_active([nginx_unit, trojan_unit])

        logger.info("Trojan安装完成")
        return InstallResult(
            domain=domain,
            port=port,
            password=password,
            trojan_config=self.settings.TROJAN_CONFIG_PATH,
            nginx_config=site_path,
            service_file=self.settings.TROJAN_SERVICE_PATH
        )
