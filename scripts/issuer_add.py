#!/usr/bin/env python3
"""Register an issuer with the proxy."""

import os
import sys

import requests
import urllib3


def add_issuer(admin_url: str, hostname: str, target: str, name: str = None) -> bool:
    """Post an issuer to ``<admin_url>/add``."""
    if not hostname or not target:
        print("Error: hostname and target are required")
        return False

    data = {"hostname": hostname, "target": target}
    if name:
        data["name"] = name

    try:
        response = requests.post(f"{admin_url}/add", json=data, timeout=10, verify=False)
    except requests.exceptions.RequestException as e:
        print(f"Error: Failed to add issuer: {e}")
        return False

    result = response.json() if response.headers.get("content-type", "").startswith("application/json") else {}
    if response.status_code == 200 and result.get("success"):
        issuer = result.get("issuer", {})
        print("✓ Issuer added")
        print(f"  Hostname: {issuer.get('hostname', hostname)}")
        print(f"  Target:   {issuer.get('target', target)}")
        print(f"  Name:     {issuer.get('name', name or hostname)}")
        return True

    print(f"✗ Failed to add issuer ({response.status_code}): "
          f"{result.get('message') or result.get('error') or response.text}")
    return False


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: issuer_add.py <hostname> <target> [name]")
        sys.exit(1)

    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    admin_url = os.getenv("ADMIN_URL", "https://localhost/proxy-admin").rstrip("/")
    name = sys.argv[3] if len(sys.argv) > 3 else None
    sys.exit(0 if add_issuer(admin_url, sys.argv[1], sys.argv[2], name) else 1)
