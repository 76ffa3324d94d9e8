import pytest

from trojan_deploy.core.exceptions import ConfigError
from trojan_deploy.services.nginx_service import NginxService
from trojan_deploy.utils.nginx_conf import NginxSiteConfig, parse


def _site(return_line):
    return """server {
    listen 80;
    server_name example.com;

    %s
}
""" % return_line


def test_rendered_site_config(settings):
    text = NginxService(settings=settings).render_site_config("example.com", 8443)
    site = NginxSiteConfig(text)

    assert len(site.servers()) == 2
    assert site.server_names() == ["example.com", "example.com"]
    assert site.redirect_port == 8443
    assert "return 301 https://$host:8443$request_uri;" in text
    assert "listen 127.0.0.1:8080;" in text


def test_rewrite_explicit_port(settings):
    text = NginxService(settings=settings).render_site_config("example.com", 8443)
    updated = NginxSiteConfig(text).with_redirect_port(9443)

    assert updated.redirect_port == 9443
    assert "return 301 https://$host:9443$request_uri;" in updated.text
    # 只修改了跳转规则本身
    assert updated.text.replace(":9443$request_uri", ":8443$request_uri") == text


def test_rewrite_implicit_port():
    site = NginxSiteConfig(_site("return 301 https://$host$request_uri;"))
    assert site.redirect_port == 443

    updated = site.with_redirect_port(9443)
    assert "return 301 https://$host:9443$request_uri;" in updated.text
    assert updated.text == _site("return 301 https://$host:9443$request_uri;")


def test_rewrite_multiline_rule():
    text = _site("return\n        301\n        https://$host:8443$request_uri;")
    updated = NginxSiteConfig(text).with_redirect_port(9443)
    assert updated.text == _site("return\n        301\n        https://$host:9443$request_uri;")


def test_rewrite_quoted_rule():
    text = _site('return 301 "https://$host:8443$request_uri";')
    updated = NginxSiteConfig(text).with_redirect_port(9443)
    assert '"https://$host:9443$request_uri";' in updated.text


def test_rewrite_keeps_query_string_forwarding():
    text = _site("return 301 https://$host:8443$uri$is_args$args;")
    updated = NginxSiteConfig(text).with_redirect_port(10443)
    assert "return 301 https://$host:10443$uri$is_args$args;" in updated.text


@pytest.mark.parametrize("url,port,expected", [
    ("https://${host}:8443$request_uri", 8443, "https://${host}:2053$request_uri"),
    ("https://example.com$request_uri", 443, "https://example.com:2053$request_uri"),
    ("https://example.com:8443/landing?from=http", 8443, "https://example.com:2053/landing?from=http"),
    ("https://$server_name:8443", 8443, "https://$server_name:2053"),
])
def test_redirect_url_forms(url, port, expected):
    site = NginxSiteConfig(_site("return 302 %s;" % url))
    assert site.redirect_port == port
    assert expected in site.with_redirect_port(2053).text


def test_commented_rule_is_untouched():
    text = _site("# return 301 https://$host:1234$request_uri;\n    return 301 https://$host:8443$request_uri;")
    updated = NginxSiteConfig(text).with_redirect_port(9443)
    assert "# return 301 https://$host:1234$request_uri;" in updated.text
    assert "return 301 https://$host:9443$request_uri;" in updated.text


def test_rule_inside_location_block():
    text = """server {
    listen 80;
    location / {
        return 301 https://$host:8443$request_uri;
    }
}
"""
    site = NginxSiteConfig(text)
    assert site.redirect_port == 8443
    assert ":9443$request_uri" in site.with_redirect_port(9443).text


@pytest.mark.parametrize("line", [
    "return 404;",
    "return 301 http://$host$request_uri;",
    "return 200 'ok';",
    "rewrite ^ https://$host:8443$request_uri permanent;",
])
def test_non_redirect_rules_ignored(line):
    site = NginxSiteConfig(_site(line))
    assert site.redirect_rules() == []
    assert site.redirect_port is None
    with pytest.raises(ConfigError):
        site.with_redirect_port(9443)


def test_rules_outside_server_blocks_ignored():
    site = NginxSiteConfig("return 301 https://$host:8443$request_uri;\n")
    assert site.redirect_rules() == []


def test_every_redirect_rule_is_rewritten():
    text = _site("return 301 https://$host:8443$request_uri;") + _site("return 301 https://$host$request_uri;")
    updated = NginxSiteConfig(text).with_redirect_port(9443)
    assert updated.text.count("https://$host:9443$request_uri;") == 2


@pytest.mark.parametrize("text", [
    "server {\n    listen 80\n}\n",
    "server {\n    listen 80;\n",
    "server {\n    listen 80;\n}\n}\n",
    "server {\n    return 301 \"https://$host;\n}\n",
    "server {\n    listen 80;\n    return 301 https://${host:8443;\n}\n",
])
def test_parse_errors(text):
    with pytest.raises(ConfigError):
        parse(text)


def test_parse_tree():
    directives = parse("events { worker_connections 768; }\nhttp { include /etc/nginx/sites-enabled/*; }\n")
    assert [d.name for d in directives] == ["events", "http"]
    assert directives[0].block[0].values == ["768"]
    assert directives[1].block[0].name == "include"
