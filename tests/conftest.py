import os
import sys

import pytest

# 添加项目根目录到Python路径
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# 测试时不写日志文件, 不访问网络
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("CHECK_DNS", "false")

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from trojan_deploy.core.config import Settings  # noqa: E402
from trojan_deploy.core.exceptions import CommandError  # noqa: E402
from trojan_deploy.services.nginx_service import NginxService  # noqa: E402
from trojan_deploy.utils.shell import CommandRunner  # noqa: E402


class FakeRunner(CommandRunner):
    """记录命令而不真正执行的执行器"""

    def __init__(self, root=True, tools=("jq",), inactive=(), failing=()):
        super().__init__()
        self.root = root
        self.tools = set(tools)
        self.inactive = set(inactive)
        self.failing = [list(cmd) for cmd in failing]
        self.hooks = {}
        self.calls = []

    def is_root(self):
        return self.root

    def which(self, binary):
        return f"/usr/bin/{binary}" if binary in self.tools else None

    async def run(self, command, check=True, timeout=None, env=None):
        args = [str(part) for part in command]
        self.calls.append(args)

        hook = self.hooks.get(args[0])
        if hook:
            hook(args)

        if any(args[:len(prefix)] == prefix for prefix in self.failing):
            if check:
                raise CommandError(
                    f"命令执行失败: {' '.join(args)}",
                    command=" ".join(args),
                    returncode=1,
                    stderr="simulated failure"
                )
            return ""

        if args[:2] == ["systemctl", "is-active"]:
            return "inactive" if args[2] in self.inactive else "active"
        return ""

    def ran(self, *prefix):
        return any(call[:len(prefix)] == list(prefix) for call in self.calls)

    def position(self, *prefix):
        for i, call in enumerate(self.calls):
            if call[:len(prefix)] == list(prefix):
                return i
        raise AssertionError(f"命令未执行: {' '.join(prefix)}")


@pytest.fixture
def settings(tmp_path):
    config = Settings(
        TROJAN_CONFIG_PATH=str(tmp_path / "etc/trojan/config.json"),
        TROJAN_SERVICE_PATH=str(tmp_path / "etc/systemd/system/trojan.service"),
        NGINX_SITES_AVAILABLE=str(tmp_path / "etc/nginx/sites-available"),
        NGINX_SITES_ENABLED=str(tmp_path / "etc/nginx/sites-enabled"),
        WWW_ROOT=str(tmp_path / "var/www"),
        SSL_DIR=str(tmp_path / "etc/letsencrypt/live"),
        SERVICE_SETTLE_SECONDS=0,
        CHECK_DNS=False,
        LOG_TO_FILE=False,
    )

    # 模拟nginx软件包自带的默认站点
    os.makedirs(config.NGINX_SITES_AVAILABLE)
    os.makedirs(config.NGINX_SITES_ENABLED)
    default_site = os.path.join(config.NGINX_SITES_AVAILABLE, "default")
    with open(default_site, "w") as f:
        f.write("server {\n    listen 80 default_server;\n}\n")
    os.symlink(default_site, os.path.join(config.NGINX_SITES_ENABLED, "default"))
    return config


@pytest.fixture
def runner(settings):
    fake = FakeRunner()

    def issue_certificate(args):
        domain = args[args.index("-d") + 1]
        cert_dir = os.path.join(settings.SSL_DIR, domain)
        os.makedirs(cert_dir, exist_ok=True)
        for name in ("fullchain.pem", "privkey.pem"):
            open(os.path.join(cert_dir, name), "w").close()

    def apt_get(args):
        if args[1] == "install":
            fake.tools.update(args[3:])

    fake.hooks["certbot"] = issue_certificate
    fake.hooks["apt-get"] = apt_get
    return fake


def write_installation(settings, domain="example.com", port=8443, site_text=None, cert=None):
    """写入一份已安装状态的配置"""
    os.makedirs(os.path.dirname(settings.TROJAN_CONFIG_PATH), exist_ok=True)
    cert_dir = os.path.join(settings.SSL_DIR, domain)
    config = """{
    "run_type": "server",
    "local_addr": "::",
    "local_port": %d,
    "remote_addr": "127.0.0.1",
    "remote_port": 8080,
    "password": [
        "secretpassword01"
    ],
    "ssl": {
        "cert": "%s",
        "key": "%s/privkey.pem",
        "fallback_port": 8080
    },
    "router": {
        "enabled": false
    },
    "tcp": {
        "no_delay": true
    }
}
""" % (port, cert or f"{cert_dir}/fullchain.pem", cert_dir)
    with open(settings.TROJAN_CONFIG_PATH, "w") as f:
        f.write(config)

    if site_text is None:
        site_text = NginxService(settings=settings).render_site_config(domain, port)
    site_path = os.path.join(settings.NGINX_SITES_AVAILABLE, domain)
    with open(site_path, "w") as f:
        f.write(site_text)
    return settings.TROJAN_CONFIG_PATH, site_path


@pytest.fixture
def installed(settings):
    return write_installation(settings)


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c
