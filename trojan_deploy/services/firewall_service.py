from typing import Optional

from trojan_deploy.core.exceptions import CommandError, FirewallError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.utils.shell import CommandRunner

logger = setup_logger(__name__)


class FirewallService:
    """防火墙管理(ufw)"""

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    async def allow(self, port: int, protocol: str = "tcp"):
        try:
            await self.runner.run(["ufw", "allow", f"{port}/{protocol}"])
        except CommandError as e:
            raise FirewallError(f"防火墙放行端口 {port} 失败") from e
        logger.info(f"防火墙已放行端口 {port}/{protocol}")

    async def delete_allow(self, port: int, protocol: str = "tcp"):
        """删除放行规则, 规则不存在时忽略"""
        await self.runner.run(["ufw", "delete", "allow", f"{port}/{protocol}"], check=False)
        logger.info(f"防火墙已移除端口 {port}/{protocol}")

    async def enable(self):
        try:
            await self.runner.run(["ufw", "--force", "enable"])
        except CommandError as e:
            raise FirewallError("启用防火墙失败") from e
