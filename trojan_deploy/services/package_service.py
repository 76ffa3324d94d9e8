from typing import Optional, Sequence

from trojan_deploy.core.config import Settings, settings as default_settings
from trojan_deploy.core.exceptions import CommandError, PackageError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.utils.shell import CommandRunner

logger = setup_logger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class PackageService:
    """系统软件包管理(apt)"""

    def __init__(self, runner: Optional[CommandRunner] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.runner = runner or CommandRunner(timeout=self.settings.COMMAND_TIMEOUT)

    async def install(self, packages: Sequence[str], upgrade: Optional[bool] = None):
        """更新软件源并安装软件包"""
        if upgrade is None:
            upgrade = self.settings.APT_UPGRADE

        logger.info(f"更新系统并安装软件包: {' '.join(packages)}")
        try:
            await self.runner.run(["apt-get", "update"], env=APT_ENV)
            if upgrade:
                await self.runner.run(["apt-get", "upgrade", "-y"], env=APT_ENV)
            await self.runner.run(["apt-get", "install", "-y", *packages], env=APT_ENV)
        except CommandError as e:
            raise PackageError(
                "软件包安装失败, 请检查系统软件源",
                hints=[e.stderr] if e.stderr else None
            ) from e

    async def ensure_tool(self, binary: str, package: Optional[str] = None):
        """确保命令可用, 缺失时自动安装"""
        if self.runner.which(binary):
            return
        logger.info(f"{binary} 未安装, 正在安装...")
        await self.install([package or binary], upgrade=False)
        if not self.runner.which(binary):
            raise PackageError(f"安装后仍找不到命令: {binary}")
