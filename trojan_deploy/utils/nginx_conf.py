"""
Nginx站点配置解析

只做读取和定点修改: 每个token都记录了在原文中的位置,
修改时仅替换对应片段, 其余内容(注释、缩进、引号)保持原样。
"""
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional

from trojan_deploy.core.exceptions import ConfigError

PUNCTUATION = (";", "{", "}")
REDIRECT_CODES = {"301", "302", "303", "307", "308"}

_BRACED_VARIABLE = re.compile(r"\$\{\w+\}")

_REDIRECT_URL = re.compile(
    r"(?P<scheme>https://)"
    r"(?P<host>\$\{\w+\}|\$\w+|[A-Za-z0-9.\-]+)"
    r"(?::(?P<port>[0-9]+))?"
    r"(?P<rest>(?:[/$?].*)?)",
    re.S
)


@dataclass
class Token:
    value: str
    start: int
    end: int
    line: int
    quoted: bool = False

    @property
    def is_punct(self) -> bool:
        return not self.quoted and self.value in PUNCTUATION


@dataclass
class Directive:
    name: str
    args: List[Token]
    line: int
    block: Optional[List["Directive"]] = None

    @property
    def values(self) -> List[str]:
        return [arg.value for arg in self.args]

    def walk(self) -> Iterator["Directive"]:
        yield self
        for child in self.block or []:
            yield from child.walk()


@dataclass
class RedirectRule:
    """return 30x https://<host>[:<port>]<rest>"""
    directive: Directive
    token: Token
    host: str
    port: Optional[int]
    rest: str

    @property
    def effective_port(self) -> int:
        return self.port if self.port is not None else 443

    def url_for(self, port: int) -> str:
        return f"https://{self.host}:{port}{self.rest}"


def tokenize(text: str) -> Iterator[Token]:
    i = 0
    n = len(text)
    line = 1
    while i < n:
        ch = text[i]
        if ch == "\n":
            line += 1
            i += 1
            continue
        if ch.isspace():
            i += 1
            continue
        if ch == "#":
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        if ch in PUNCTUATION:
            yield Token(ch, i, i + 1, line)
            i += 1
            continue
        if ch in "\"'":
            start = i + 1
            start_line = line
            j = start
            while j < n and text[j] != ch:
                if text[j] == "\\":
                    j += 1
                elif text[j] == "\n":
                    line += 1
                j += 1
            if j >= n:
                raise ConfigError(f"第{start_line}行: 引号未闭合")
            yield Token(text[start:j], start, j, start_line, quoted=True)
            i = j + 1
            continue

        start = i
        while i < n:
            ch = text[i]
            if ch.isspace() or ch in PUNCTUATION:
                break
            if ch == "$" and i + 1 < n and text[i + 1] == "{":
                match = _BRACED_VARIABLE.match(text, i)
                if not match:
                    raise ConfigError(f"第{line}行: 变量缺少 '}}'")
                i = match.end()
                continue
            if ch == "\\":
                i += 2
                continue
            i += 1
        yield Token(text[start:i], start, i, line)


def parse(text: str) -> List[Directive]:
    """解析配置文本为指令树"""
    tokens = list(tokenize(text))
    pos = 0

    def parse_block(depth: int) -> List[Directive]:
        nonlocal pos
        directives: List[Directive] = []
        while pos < len(tokens):
            tok = tokens[pos]
            if tok.is_punct:
                if tok.value == "}" and depth > 0:
                    pos += 1
                    return directives
                raise ConfigError(f"第{tok.line}行: 意外的 '{tok.value}'")

            name = tok
            pos += 1
            args: List[Token] = []
            while True:
                if pos >= len(tokens):
                    raise ConfigError(f"第{name.line}行: 指令 '{name.value}' 缺少 ';'")
                tok = tokens[pos]
                pos += 1
                if tok.is_punct and tok.value == ";":
                    directives.append(Directive(name.value, args, name.line))
                    break
                if tok.is_punct and tok.value == "{":
                    block = parse_block(depth + 1)
                    directives.append(Directive(name.value, args, name.line, block))
                    break
                if tok.is_punct:
                    raise ConfigError(f"第{name.line}行: 指令 '{name.value}' 缺少 ';'")
                args.append(tok)

        if depth > 0:
            raise ConfigError("配置块未闭合, 缺少 '}'")
        return directives

    return parse_block(0)


class NginxSiteConfig:
    """Nginx站点配置"""

    def __init__(self, text: str):
        self.text = text
        self.directives = parse(text)

    def servers(self) -> List[Directive]:
        found = []
        for directive in self.directives:
            found.extend(d for d in directive.walk() if d.name == "server" and d.block is not None)
        return found

    def server_names(self) -> List[str]:
        names: List[str] = []
        for server in self.servers():
            for directive in server.block:
                if directive.name == "server_name":
                    names.extend(directive.values)
        return names

    def redirect_rules(self) -> List[RedirectRule]:
        """查找所有跳转到HTTPS的return指令"""
        rules = []
        for server in self.servers():
            for directive in server.walk():
                if directive.name != "return" or len(directive.args) != 2:
                    continue
                code, url = directive.args
                if code.value not in REDIRECT_CODES:
                    continue
                match = _REDIRECT_URL.fullmatch(url.value)
                if not match:
                    continue
                port = match.group("port")
                rules.append(RedirectRule(
                    directive=directive,
                    token=url,
                    host=match.group("host"),
                    port=int(port) if port is not None else None,
                    rest=match.group("rest")
                ))
        return rules

    @property
    def redirect_port(self) -> Optional[int]:
        rules = self.redirect_rules()
        if not rules:
            return None
        return rules[0].effective_port

    def with_redirect_port(self, port: int) -> "NginxSiteConfig":
        """返回跳转端口被替换后的新配置"""
        rules = self.redirect_rules()
        if not rules:
            raise ConfigError("站点配置中未找到HTTPS跳转规则")

        text = self.text
        for rule in sorted(rules, key=lambda r: r.token.start, reverse=True):
            text = text[:rule.token.start] + rule.url_for(port) + text[rule.token.end:]
        return NginxSiteConfig(text)

    def render(self) -> str:
        return self.text
