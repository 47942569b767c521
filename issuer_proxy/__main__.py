"""Allow ``python -m issuer_proxy``."""

from .main import main

if __name__ == "__main__":
    main()
