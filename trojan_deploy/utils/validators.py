import re
import secrets
import string
from typing import Union

from trojan_deploy.core.exceptions import InvalidInputError

_DIGITS = re.compile(r"[0-9]+")

PASSWORD_ALPHABET = string.ascii_letters + string.digits


def parse_port(raw: Union[str, int, None]) -> int:
    """校验端口号, 返回1-65535之间的整数"""
    if isinstance(raw, bool):
        raise InvalidInputError("端口号必须是数字")
    if isinstance(raw, int):
        port = raw
    else:
        value = "" if raw is None else str(raw)
        if not value:
            raise InvalidInputError("必须提供端口号")
        if not _DIGITS.fullmatch(value):
            raise InvalidInputError(
                f"端口号无效: {value!r}, 请输入1到65535之间的数字"
            )
        port = int(value)

    if port < 1 or port > 65535:
        raise InvalidInputError(
            f"端口号无效: {port}, 请输入1到65535之间的数字"
        )
    return port


def generate_password(length: int = 16) -> str:
    """生成随机字母数字密码"""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
