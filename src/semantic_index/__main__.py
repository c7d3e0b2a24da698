"""Allow ``python -m semantic_index``."""

from .cli.main import app

if __name__ == "__main__":
    app()
