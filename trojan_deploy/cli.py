import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from trojan_deploy.core.exceptions import DeployError
from trojan_deploy.services.install_service import InstallService, build_install_request
from trojan_deploy.services.port_service import PortChangeService
from trojan_deploy.services.trojan_service import TrojanService

app = typer.Typer(add_completion=False, help="Trojan + Nginx + SSL 部署工具")
console = Console()


def info(message: str):
    console.print(f"[INFO] {message}", style="green", markup=False)


def warn(message: str):
    console.print(f"[WARN] {message}", style="yellow", markup=False)


def fail(error: DeployError):
    console.print(f"[ERROR] {error.message}", style="red", markup=False)
    for hint in error.hints:
        console.print(f"[ERROR] {hint}", style="red", markup=False)
    raise typer.Exit(1)


def _run(coro):
    try:
        return asyncio.run(coro)
    except DeployError as e:
        fail(e)


@app.command()
def install(
    domain: str = typer.Option(..., "--domain", prompt="请输入域名 (例如 mydomain.com)"),
    password: str = typer.Option(
        "", "--password",
        prompt="请输入Trojan密码 (留空随机生成)",
        show_default=False
    ),
    port: str = typer.Option(..., "--port", prompt="请输入Trojan监听端口 (例如 8443, 不能为80)"),
    email: str = typer.Option(..., "--email", prompt="请输入邮箱 (用于Let's Encrypt续期通知)"),
):
    """安装Trojan、Nginx并申请SSL证书"""
    try:
        request = build_install_request(domain, password, port, email)
    except DeployError as e:
        fail(e)

    info("开始安装Trojan")
    result = _run(InstallService().install(request))

    info("-" * 50)
    info("Trojan安装完成!")
    info("-" * 50)
    console.print("配置信息:", style="yellow", markup=False)
    table = Table(show_header=False, box=None)
    table.add_row("域名:", result.domain, style="green")
    table.add_row("端口:", str(result.port), style="green")
    table.add_row("密码:", result.password, style="green")
    console.print(table)
    info("请在Trojan客户端中使用以上信息")
    info(f"网站地址: http://{result.domain} (将跳转到https)")


@app.command("change-port", context_settings={"ignore_unknown_options": True})
def change_port(
    new_port: Optional[str] = typer.Argument(None, help="新的监听端口 (1-65535)", show_default=False),
):
    """修改已安装Trojan的监听端口"""
    if new_port is None:
        console.print("Usage: trojan-deploy change-port <new_port>", style="yellow", markup=False)
        fail(DeployError("必须提供新的端口号作为参数"))

    result = _run(PortChangeService().change_port(new_port))

    info("-" * 50)
    info("端口修改成功!")
    info(f"Trojan现在监听 {result.new_port} 端口 (原端口 {result.old_port})")
    info("-" * 50)


@app.command()
def status():
    """查看Trojan部署状态"""
    result = _run(TrojanService().get_status())

    table = Table(title="Trojan状态")
    table.add_column("项目")
    table.add_column("值")
    table.add_row("域名", result.domain or "-")
    table.add_row("Trojan端口", str(result.port or "-"))
    table.add_row("Nginx跳转端口", str(result.redirect_port or "-"))
    table.add_row("Nginx", "active" if result.nginx_running else "inactive")
    table.add_row("Trojan", "active" if result.trojan_running else "inactive")
    for key, value in (result.system_info or {}).items():
        table.add_row(key, f"{value}%")
    console.print(table)

    if not result.consistent:
        warn("Trojan端口与Nginx跳转端口不一致或未检测到安装")


if __name__ == "__main__":
    app()
