"""Pre-provisioned TLS material.

Certificates are produced outside the proxy (for example with mkcert) and
supplied as PEM files. They are checked once at startup; problems here stop
the process.
"""

import os
import ssl
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from ..shared.config import Config
from ..shared.errors import StartupError
from ..shared.logger import log_info, log_warning

MKCERT_INSTRUCTIONS = """Generate certificates with:
  mkcert -install
  mkcert fido.moi.gov.tw land.moi.gov.tw zuvi.io localhost 127.0.0.1 ::1
  mv fido.moi.gov.tw+5.pem {cert_file}
  mv fido.moi.gov.tw+5-key.pem {key_file}"""


@dataclass
class TLSMaterial:
    """Certificate and key files plus what the certificate covers."""
    cert_file: str
    key_file: str
    common_name: str = ""
    dns_names: List[str] = field(default_factory=list)
    not_valid_after: Optional[datetime] = None

    def covers(self, hostname: str) -> bool:
        """Whether the certificate is valid for a hostname, wildcards included."""
        if hostname in self.dns_names:
            return True
        parts = hostname.split('.')
        if len(parts) > 2:
            wildcard = f"*.{'.'.join(parts[1:])}"
            return wildcard in self.dns_names
        return False

    @property
    def expired(self) -> bool:
        return self.not_valid_after is not None and self.not_valid_after <= datetime.now(timezone.utc)


def load_tls_material(config: Config) -> TLSMaterial:
    """Check that the certificate and key exist, parse and pair up.

    Raises:
        StartupError: with mkcert instructions when files are missing,
            or when the certificate or key cannot be used
    """
    cert_file, key_file = config.CERT_FILE, config.KEY_FILE
    instructions = MKCERT_INSTRUCTIONS.format(cert_file=cert_file, key_file=key_file)

    missing = [path for path in (cert_file, key_file) if not os.path.isfile(path)]
    if missing:
        raise StartupError(f"SSL certificate files not found: {', '.join(missing)}\n{instructions}")

    try:
        with open(cert_file, 'rb') as f:
            certificate = x509.load_pem_x509_certificate(f.read())
    except (OSError, ValueError) as e:
        raise StartupError(f"Cannot read certificate {cert_file}: {e}\n{instructions}")

    # Catches a key that does not belong to the certificate
    try:
        ssl.create_default_context(ssl.Purpose.CLIENT_AUTH).load_cert_chain(cert_file, key_file)
    except (OSError, ssl.SSLError) as e:
        raise StartupError(f"Certificate {cert_file} and key {key_file} are not usable together: {e}")

    common_names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    try:
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        dns_names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        dns_names = []

    material = TLSMaterial(
        cert_file=cert_file,
        key_file=key_file,
        common_name=str(common_names[0].value) if common_names else "",
        dns_names=list(dns_names),
        not_valid_after=certificate.not_valid_after_utc,
    )

    if material.expired:
        log_warning(f"Certificate {cert_file} expired at {material.not_valid_after.isoformat()}",
                    component="tls")

    log_info(f"Loaded certificate {cert_file}", component="tls",
             common_name=material.common_name, dns_names=material.dns_names,
             not_valid_after=material.not_valid_after.isoformat())
    return material


def warn_uncovered_hostnames(material: TLSMaterial, hostnames: Iterable[str]) -> List[str]:
    """Log hostnames the certificate does not cover and return them."""
    uncovered = [hostname for hostname in hostnames if not material.covers(hostname)]
    for hostname in uncovered:
        log_warning(f"Certificate does not cover {hostname}; browsers will reject it",
                    component="tls", hostname=hostname)
    return uncovered
