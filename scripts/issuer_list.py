#!/usr/bin/env python3
"""List all issuers known to the proxy."""

import os
import sys

import requests
import urllib3
from tabulate import tabulate


def list_issuers(admin_url: str) -> bool:
    """Print the routing table served at ``<admin_url>/list``."""
    try:
        # The proxy's own certificate is usually a local mkcert one
        response = requests.get(f"{admin_url}/list", timeout=10, verify=False)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        print(f"Error: Failed to list issuers: {e}")
        return False

    issuers = response.json()
    if not issuers:
        print("No issuers configured")
        return True

    table_data = [
        [hostname, issuer.get("target", ""), issuer.get("name") or hostname]
        for hostname, issuer in sorted(issuers.items())
    ]
    print(tabulate(table_data, headers=["Hostname", "Target", "Name"], tablefmt="grid"))
    print(f"\nTotal issuers: {len(issuers)}")
    print(f"\n/etc/hosts: 127.0.0.1  {' '.join(sorted(issuers))}")
    return True


if __name__ == "__main__":
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    admin_url = os.getenv("ADMIN_URL", "https://localhost/proxy-admin").rstrip("/")
    sys.exit(0 if list_issuers(admin_url) else 1)
