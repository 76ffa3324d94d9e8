import asyncio
import os
import shlex
import shutil
from typing import Mapping, Optional, Sequence, Union

from trojan_deploy.core.exceptions import CommandError
from trojan_deploy.core.logger import setup_logger

logger = setup_logger(__name__)

Command = Union[str, Sequence[str]]


def format_command(command: Command) -> str:
    if isinstance(command, str):
        return command
    return " ".join(shlex.quote(str(part)) for part in command)


async def run_command(
    command: Command,
    check: bool = True,
    timeout: int = 60,
    env: Optional[Mapping[str, str]] = None
) -> str:
    """
    异步执行外部命令

    Args:
        command: 要执行的命令, 字符串经shell执行, 列表直接执行
        check: 是否检查返回值
        timeout: 超时时间(秒)
        env: 追加的环境变量

    Returns:
        命令输出
    """
    cmdline = format_command(command)
    logger.debug(f"执行命令: {cmdline}")

    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    if isinstance(command, str):
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=full_env
        )
    else:
        process = await asyncio.create_subprocess_exec(
            *[str(part) for part in command],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=full_env
        )

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        logger.error(f"命令执行超时: {cmdline}")
        raise CommandError(f"命令执行超时: {cmdline}", command=cmdline)

    if check and process.returncode != 0:
        error_msg = stderr.decode(errors="replace").strip()
        logger.error(f"命令执行失败: {cmdline}: {error_msg}")
        raise CommandError(
            f"命令执行失败: {cmdline}",
            command=cmdline,
            returncode=process.returncode,
            stderr=error_msg
        )

    return stdout.decode(errors="replace").strip()


class CommandRunner:
    """主机命令执行器, 工作流通过它访问外部工具"""

    def __init__(self, timeout: int = 60):
        self.timeout = timeout

    async def run(
        self,
        command: Command,
        check: bool = True,
        timeout: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None
    ) -> str:
        return await run_command(
            command,
            check=check,
            timeout=timeout or self.timeout,
            env=env
        )

    def which(self, binary: str) -> Optional[str]:
        return shutil.which(binary)

    def is_root(self) -> bool:
        return os.geteuid() == 0
