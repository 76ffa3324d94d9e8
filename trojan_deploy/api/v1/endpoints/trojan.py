from fastapi import APIRouter, HTTPException

from trojan_deploy.core.exceptions import DeployError
from trojan_deploy.core.logger import setup_logger
from trojan_deploy.schemas.deploy import DeployResponse, InstallRequest, PortChangeRequest
from trojan_deploy.services.install_service import InstallService
from trojan_deploy.services.port_service import PortChangeService
from trojan_deploy.services.trojan_service import TrojanService

router = APIRouter()
install_service = InstallService()
port_service = PortChangeService()
trojan_service = TrojanService()
logger = setup_logger(__name__)


def _error_detail(e: DeployError) -> dict:
    return {"message": e.message, "hints": e.hints}


@router.post("/install", response_model=DeployResponse)
async def install_trojan(request: InstallRequest):
    """
    安装Trojan + Nginx + SSL

    请求示例:    ```json
    {
        "domain": "example.com",
        "password": null,
        "port": 8443,
        "email": "admin@example.com"
    }    ```

    成功响应示例:    ```json
    {
        "success": true,
        "message": "Trojan安装完成",
        "data": {
            "domain": "example.com",
            "port": 8443,
            "password": "a1B2c3D4e5F6g7H8",
            "trojan_config": "/etc/trojan/config.json",
            "nginx_config": "/etc/nginx/sites-available/example.com",
            "service_file": "/etc/systemd/system/trojan.service"
        }
    }    ```
    """
    logger.info(f"[安装] 接收到请求 - 域名: {request.domain}, 端口: {request.port}")
    try:
        result = await install_service.install(request)
    except DeployError as e:
        logger.error(f"[安装] 失败 - 域名: {request.domain}, 原因: {e.message}")
        raise HTTPException(status_code=400, detail=_error_detail(e))
    logger.info(f"[安装] 成功 - 域名: {request.domain}, 端口: {request.port}")
    return DeployResponse(success=True, message="Trojan安装完成", data=result.model_dump())


@router.put("/port", response_model=DeployResponse)
async def change_port(request: PortChangeRequest):
    """
    修改Trojan监听端口

    请求示例:    ```json
    {
        "port": 9443
    }    ```

    成功响应示例:    ```json
    {
        "success": true,
        "message": "端口修改成功",
        "data": {
            "domain": "example.com",
            "old_port": 8443,
            "new_port": 9443
        }
    }    ```
    """
    logger.info(f"[修改端口] 接收到请求 - 新端口: {request.port}")
    try:
        result = await port_service.change_port(request.port)
    except DeployError as e:
        logger.error(f"[修改端口] 失败 - 原因: {e.message}")
        raise HTTPException(status_code=400, detail=_error_detail(e))
    logger.info(f"[修改端口] 成功 - {result.old_port} -> {result.new_port}")
    return DeployResponse(success=True, message="端口修改成功", data=result.model_dump())


@router.get("/status", response_model=DeployResponse)
async def get_status():
    """获取Trojan部署状态"""
    status = await trojan_service.get_status()
    return DeployResponse(
        success=status.nginx_running and status.trojan_running,
        message="运行正常" if status.consistent else "配置不一致或未安装",
        data=status.model_dump()
    )
