from typing import Iterable, List, Optional


class DeployError(Exception):
    """部署相关错误"""

    def __init__(self, message: str = "部署失败", hints: Optional[Iterable[str]] = None):
        self.message = message
        self.hints: List[str] = list(hints or [])
        super().__init__(self.message)


class PrivilegeError(DeployError):
    """权限不足"""
    pass


class InvalidInputError(DeployError):
    """输入参数无效"""
    pass


class PrerequisiteError(DeployError):
    """前置文件缺失"""
    pass


class ConfigError(DeployError):
    """配置文件无法解析"""
    pass


class CommandError(DeployError):
    """外部命令执行失败"""

    def __init__(
        self,
        message: str,
        command: str = "",
        returncode: Optional[int] = None,
        stderr: str = "",
        hints: Optional[Iterable[str]] = None
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, hints)


class PackageError(DeployError):
    """软件包安装错误"""
    pass


class FirewallError(DeployError):
    """防火墙相关错误"""
    pass


class SSLError(DeployError):
    """SSL证书相关错误"""
    pass


class NginxError(DeployError):
    """Nginx相关错误"""
    pass


class ServiceError(DeployError):
    """服务未处于运行状态"""
    pass
