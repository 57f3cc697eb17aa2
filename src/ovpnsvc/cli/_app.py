"""The command-line interface for ovpnsvc."""

from cyclopts import App
from rich.console import Console

from ovpnsvc import __version__

from ._commands import register_commands

_HELP = "Supervise OpenVPN tunnels started through the privileged helper."

app = App(name="ovpnsvc", help=_HELP, help_on_error=True, version=__version__)
register_commands(app)


def create_app(
    console: Console | None = None,
    error_console: Console | None = None,
    *,
    exit_on_error: bool = True,
) -> App:
    if console is None:
        console = Console()
    if error_console is None:
        error_console = Console(stderr=True)
    app = App(
        name="ovpnsvc",
        help=_HELP,
        help_on_error=True,
        version=__version__,
        console=console,
        error_console=error_console,
        exit_on_error=exit_on_error,
    )
    register_commands(app)
    return app


def main() -> None:
    """Default entrypoint for the `ovpnsvc` CLI."""
    app = create_app()
    app()


if __name__ == "__main__":
    main()
