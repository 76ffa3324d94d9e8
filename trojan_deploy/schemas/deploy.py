from typing import Optional

from pydantic import BaseModel, Field, field_validator


class InstallRequest(BaseModel):
    """安装请求参数"""
    domain: str
    password: Optional[str] = Field(default=None, description="留空则随机生成")
    port: int = Field(..., ge=1, le=65535, description="Trojan监听端口")
    email: str = Field(..., description="Let's Encrypt通知邮箱")

    @field_validator("domain", "email")
    @classmethod
    def not_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("不能为空")
        return value

    @field_validator("port")
    @classmethod
    def not_http_port(cls, value: int) -> int:
        if value == 80:
            raise ValueError("端口不能为80")
        return value


class InstallResult(BaseModel):
    """安装结果"""
    domain: str
    port: int
    password: str
    trojan_config: str
    nginx_config: str
    service_file: str


class PortChangeRequest(BaseModel):
    """修改端口请求参数"""
    port: int = Field(..., ge=1, le=65535)


class PortChangeResult(BaseModel):
    """修改端口结果"""
    domain: str
    old_port: int
    new_port: int


class DeployResponse(BaseModel):
    """接口响应"""
    success: bool
    message: str
    data: Optional[dict] = None
