"""Entry point for running flowgate as a module.

This allows running the application with:
    python -m flowgate [OPTIONS] COMMAND [ARGS]
"""

from flowgate.cli import app

if __name__ == "__main__":
    app()
