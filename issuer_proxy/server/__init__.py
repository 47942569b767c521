"""HTTPS and HTTP listeners."""

from .https_server import ProxyHTTPSServer, RedirectHTTPServer, create_redirect_app
from .tls import TLSMaterial, load_tls_material

__all__ = ['ProxyHTTPSServer', 'RedirectHTTPServer', 'create_redirect_app', 'TLSMaterial', 'load_tls_material']
