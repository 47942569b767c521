#!/usr/bin/env python3
"""CLI entry point for the issuer proxy.

Starts the HTTPS reverse proxy and the HTTP redirect listener. Configuration
comes from environment variables (see issuer_proxy/shared/config.py).
"""

from issuer_proxy.main import main

if __name__ == "__main__":
    main()
