import os
from typing import Optional, Union

from trojan_deploy.core.config import Settings, settings as default_settings
from trojan_deploy.core.exceptions import (
    CommandError,
    ConfigError,
    InvalidInputError,
    PrivilegeError,
)
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.schemas.deploy import PortChangeResult
from trojan_deploy.services.firewall_service import FirewallService
from trojan_deploy.services.nginx_service import NginxService
from trojan_deploy.services.package_service import PackageService
from trojan_deploy.services.systemd_service import SystemdService
from trojan_deploy.services.trojan_service import TrojanService
from trojan_deploy.utils.shell import CommandRunner
from trojan_deploy.utils.transaction import ConfigTransaction
from trojan_deploy.utils.validators import parse_port

logger = setup_logger(__name__)


class PortChangeService:
    """修改已安装Trojan的监听端口"""

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
        self.nginx_service = NginxService(self.runner, self.settings, self.systemd)
        self.trojan_service = TrojanService(
            self.runner, self.settings, self.systemd, self.nginx_service
        )

    async def change_port(self, new_port: Union[str, int]) -> PortChangeResult:
        """
        将Trojan监听端口、Nginx跳转规则和防火墙规则一起迁移到新端口

        两个配置文件在同一个事务中提交, 任一校验失败都会恢复原文件。
        """
        if not self.runner.is_root():
            raise PrivilegeError("必须以root权限运行, 请使用 sudo")

        new_port = parse_port(new_port)

        # 先确认配置文件存在, 再按需安装jq
        config_path = self.settings.TROJAN_CONFIG_PATH
        await self.trojan_service.load_config()
        await self.packages.ensure_tool("jq")

        logger.info("检测当前配置...")
        config, old_port, domain = await self.trojan_service.detect_installation()
        if old_port == new_port:
            raise InvalidInputError(
                f"新端口 ({new_port}) 与当前端口 ({old_port}) 相同, 无需修改"
            )
        logger.info(f"检测到域名: {domain}")
        logger.info(f"端口将从 {old_port} 修改为 {new_port}")

        site = await self.nginx_service.load_site(domain)
        if not site.redirect_rules():
            raise ConfigError(
                f"在 {self.nginx_service.site_path(domain)} 中未找到HTTPS跳转规则"
            )
        if site.redirect_port != old_port:
            logger.warning(
                f"Nginx跳转端口 ({site.redirect_port}) 与Trojan端口 ({old_port}) 不一致, 将一并修正"
            )

        updated_site = site.with_redirect_port(new_port)
        updated_config = config.model_copy(update={"local_port": new_port})
        site_path = self.nginx_service.site_path(domain)

        async def check_staged_json():
            try:
                await self.runner.run([
                    "jq", "-e", f".local_port == {new_port}", config_path
                ])
            except CommandError as e:
                raise ConfigError(f"Trojan配置校验失败: {config_path}") from e

        async with ConfigTransaction() as tx:
            await tx.stage_write(site_path, updated_site.render(), _file_mode(site_path))
            await tx.stage_write(
                config_path,
                self.trojan_service.dumps(updated_config),
                _file_mode(config_path)
            )
            await tx.commit(validators=[
                self.nginx_service.test_config,
                check_staged_json
            ])

            # 先放行新端口, 失败时配置文件一并回滚
            logger.info("更新防火墙规则...")
            await self.firewall.allow(new_port)
        await self.firewall.delete_allow(old_port)

        logger.info("重新加载Nginx并重启Trojan...")
        await self.nginx_service.reload()
        await self.systemd.restart(self.settings.TROJAN_SERVICE_NAME)
        await self.systemd.verify_active([
            self.settings.NGINX_SERVICE_NAME,
            self.settings.TROJAN_SERVICE_NAME
        ])

        logger.info(f"端口修改成功, Trojan现在监听 {new_port} 端口")
        return PortChangeResult(domain=domain, old_port=old_port, new_port=new_port)


def _file_mode(path: str) -> int:
    return os.stat(path).st_mode & 0o7777
