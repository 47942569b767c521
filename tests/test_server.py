"""Tests for TLS material checks and the HTTP listeners."""

import httpx
import pytest

from conftest import write_self_signed
from issuer_proxy.server import ProxyHTTPSServer, RedirectHTTPServer, create_redirect_app, load_tls_material
from issuer_proxy.server.tls import TLSMaterial, warn_uncovered_hostnames
from issuer_proxy.shared.config import Config
from issuer_proxy.shared.errors import StartupError


class TestTLSMaterial:
    def test_missing_files_stop_startup_with_mkcert_hint(self, config):
        with pytest.raises(StartupError) as exc_info:
            load_tls_material(config)

        assert "SSL certificate files not found" in exc_info.value.message
        assert "mkcert" in exc_info.value.message

    def test_valid_pair_is_loaded(self, config):
        write_self_signed(config.CERT_FILE, config.KEY_FILE, ["localhost", "fido.moi.gov.tw"])

        material = load_tls_material(config)

        assert material.common_name == "localhost"
        assert material.dns_names == ["localhost", "fido.moi.gov.tw"]
        assert not material.expired

    def test_mismatched_key_stops_startup(self, config, tmp_path):
        write_self_signed(config.CERT_FILE, config.KEY_FILE, ["localhost"])
        other_cert = str(tmp_path / "other.pem")
        write_self_signed(other_cert, config.KEY_FILE, ["localhost"])

        with pytest.raises(StartupError) as exc_info:
            load_tls_material(config)

        assert "not usable together" in exc_info.value.message

    def test_garbage_certificate_stops_startup(self, config):
        with open(config.CERT_FILE, "w") as f:
            f.write("not a certificate")
        with open(config.KEY_FILE, "w") as f:
            f.write("not a key")

        with pytest.raises(StartupError):
            load_tls_material(config)

    def test_wildcard_coverage(self):
        material = TLSMaterial(cert_file="c", key_file="k", dns_names=["*.moi.gov.tw", "zuvi.io"])

        assert material.covers("fido.moi.gov.tw")
        assert material.covers("zuvi.io")
        assert not material.covers("a.b.moi.gov.tw")
        assert not material.covers("moi.gov.tw")

    def test_uncovered_hostnames_are_reported(self):
        material = TLSMaterial(cert_file="c", key_file="k", dns_names=["fido.moi.gov.tw"])

        uncovered = warn_uncovered_hostnames(material, ["fido.moi.gov.tw", "zuvi.io"])

        assert uncovered == ["zuvi.io"]


class TestListeners:
    def test_https_server_uses_certificate_files(self, config):
        config.HTTPS_PORT = 8443
        tls = TLSMaterial(cert_file=config.CERT_FILE, key_file=config.KEY_FILE)

        hypercorn_config = ProxyHTTPSServer(app=None, config=config, tls=tls).build_config()

        assert hypercorn_config.bind == ["0.0.0.0:8443"]
        assert hypercorn_config.certfile == config.CERT_FILE
        assert hypercorn_config.keyfile == config.KEY_FILE

    def test_redirect_server_binds_http_port(self):
        server = RedirectHTTPServer(Config(HTTP_PORT=8080))

        assert server.build_config().bind == ["0.0.0.0:8080"]

    @pytest.mark.parametrize("https_port, expected", [
        (443, "https://fido.moi.gov.tw/credential?x=1"),
        (8443, "https://fido.moi.gov.tw:8443/credential?x=1"),
    ])
    async def test_http_redirects_to_https(self, https_port, expected):
        app = create_redirect_app(Config(HTTPS_PORT=https_port))
        transport = httpx.ASGITransport(app=app)

        async with httpx.AsyncClient(transport=transport, base_url="http://proxy.test") as client:
            response = await client.post("/credential?x=1", headers={"host": "fido.moi.gov.tw:80"})

        assert response.status_code == 301
        assert response.headers["location"] == expected
