from unittest.mock import AsyncMock, patch

from trojan_deploy.core.exceptions import InvalidInputError
from trojan_deploy.schemas.deploy import InstallResult, PortChangeResult
from trojan_deploy.schemas.trojan import TrojanStatus
from trojan_deploy.services.install_service import InstallService
from trojan_deploy.services.port_service import PortChangeService
from trojan_deploy.services.trojan_service import TrojanService


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["docs_url"] == "/docs"


def test_install(client):
    result = InstallResult(
        domain="example.com",
        port=8443,
        password="a1B2c3D4e5F6g7H8",
        trojan_config="/etc/trojan/config.json",
        nginx_config="/etc/nginx/sites-available/example.com",
        service_file="/etc/systemd/system/trojan.service"
    )
    with patch.object(InstallService, "install", new=AsyncMock(return_value=result)):
        response = client.post("/api/v1/trojan/install", json={
            "domain": "example.com",
            "port": 8443,
            "email": "admin@example.com"
        })
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["data"]["port"] == 8443


def test_install_rejects_port_80(client):
    with patch.object(InstallService, "install", new=AsyncMock()) as mock_install:
        response = client.post("/api/v1/trojan/install", json={
            "domain": "example.com",
            "port": 80,
            "email": "admin@example.com"
        })
    assert response.status_code == 422
    mock_install.assert_not_called()


def test_change_port(client):
    result = PortChangeResult(domain="example.com", old_port=8443, new_port=9443)
    with patch.object(PortChangeService, "change_port", new=AsyncMock(return_value=result)):
        response = client.put("/api/v1/trojan/port", json={"port": 9443})
    assert response.status_code == 200
    assert response.json()["data"] == {"domain": "example.com", "old_port": 8443, "new_port": 9443}


def test_change_port_error(client):
    error = InvalidInputError("新端口 (8443) 与当前端口 (8443) 相同, 无需修改")
    with patch.object(PortChangeService, "change_port", new=AsyncMock(side_effect=error)):
        response = client.put("/api/v1/trojan/port", json={"port": 8443})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == error.message


def test_status(client):
    status = TrojanStatus(
        domain="example.com",
        port=8443,
        redirect_port=8443,
        consistent=True,
        nginx_running=True,
        trojan_running=True
    )
    with patch.object(TrojanService, "get_status", new=AsyncMock(return_value=status)):
        response = client.get("/api/v1/trojan/status")
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["data"]["port"] == 8443
