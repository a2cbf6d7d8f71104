"""
CLI interface for expertdeck using Typer.
"""

# Import shared state (app, options, utilities) first
from ._shared import app, main_callback, ProjectArgument  # noqa: F401

# Import submodules to register their commands with the Typer app
from . import session  # noqa: F401
from . import expert  # noqa: F401


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
