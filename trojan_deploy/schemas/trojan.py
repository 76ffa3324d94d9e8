import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TrojanSSL(BaseModel):
    """Trojan SSL配置"""
    model_config = ConfigDict(extra="allow")

    cert: str
    key: str
    fallback_port: int = Field(default=8080, ge=1, le=65535)


class TrojanRouter(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = False


class TrojanConfig(BaseModel):
    """Trojan服务端配置(/etc/trojan/config.json)"""
    model_config = ConfigDict(extra="allow")

    run_type: str = "server"
    local_addr: str = "::"
    local_port: int = Field(..., ge=1, le=65535)
    remote_addr: str = "127.0.0.1"
    remote_port: int = Field(default=8080, ge=1, le=65535)
    password: List[str]
    ssl: TrojanSSL
    router: TrojanRouter = Field(default_factory=TrojanRouter)

    def domain(self, ssl_dir: str) -> Optional[str]:
        """从证书路径中解析域名"""
        pattern = re.escape(ssl_dir.rstrip("/")) + r"/([^/]+)/fullchain\.pem"
        match = re.fullmatch(pattern, self.ssl.cert)
        return match.group(1) if match else None


class TrojanStatus(BaseModel):
    """Trojan部署状态"""
    domain: Optional[str] = None
    port: Optional[int] = None
    redirect_port: Optional[int] = None
    consistent: bool = False
    nginx_running: bool = False
    trojan_running: bool = False
    system_info: Optional[dict] = None
