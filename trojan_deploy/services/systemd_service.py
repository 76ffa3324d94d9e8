import asyncio
from typing import Iterable, Optional

from trojan_deploy.core.config import Settings, settings as default_settings
from trojan_deploy.core.exceptions import CommandError, ServiceError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.utils.shell import CommandRunner

logger = setup_logger(__name__)


class SystemdService:
    """systemd服务管理"""

    def __init__(self, runner: Optional[CommandRunner] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.runner = runner or CommandRunner()

    async def _systemctl(self, action: str, unit: Optional[str] = None):
        args = ["systemctl", action]
        if unit:
            args.append(unit)
        try:
            await self.runner.run(args)
        except CommandError as e:
            raise ServiceError(
                f"systemctl {action} {unit or ''}执行失败".strip(),
                hints=[f"systemctl status {unit}"] if unit else None
            ) from e

    async def daemon_reload(self):
        await self._systemctl("daemon-reload")

    async def enable(self, unit: str):
        await self._systemctl("enable", unit)

    async def stop(self, unit: str):
        await self._systemctl("stop", unit)
        logger.info(f"{unit} 服务已停止")

    async def restart(self, unit: str):
        await self._systemctl("restart", unit)
        logger.info(f"{unit} 服务已重启")

    async def reload(self, unit: str):
        await self._systemctl("reload", unit)
        logger.info(f"{unit} 服务已重新加载")

    async def is_active(self, unit: str) -> bool:
        status = await self.runner.run(["systemctl", "is-active", unit], check=False)
        return status.strip() == "active"

    async def verify_active(self, units: Iterable[str]):
        """等待服务启动后确认均处于active状态"""
        units = list(units)
        await asyncio.sleep(self.settings.SERVICE_SETTLE_SECONDS)
        failed = [unit for unit in units if not await self.is_active(unit)]
        if failed:
            raise ServiceError(
                f"服务未能正常启动: {', '.join(failed)}",
                hints=[f"systemctl status {unit}" for unit in units]
            )
        logger.info(f"服务运行正常: {', '.join(units)}")
