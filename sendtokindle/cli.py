import typer
from typing import Optional

app = typer.Typer(name="sendtokindle", add_completion=False)

@app.command()
def send(
    recipient: str = typer.Argument(..., help="Kindle address, e.g. name_abc@kindle.com"),
    file_path: str = typer.Argument(..., metavar="FILE", help="File to attach, e.g. book.mobi"),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default is $HOME/.sendtokindle.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    test_mode: bool = typer.Option(False, "--test", "-t", help="Build the message and resolve the mail exchanger without sending")
):
    """
    Sends a file to your kindle.

    Given a kindle address and a mobi file, encodes that file and sends it as
    an email message directly to the kindle mail server.
    """
    from pydantic import ValidationError
    from .config import MainConfig
    from .main import send_file, dry_run, setup_logging
    from .pipeline import DeliveryError

    try:
        config, config_file = MainConfig.load(config_path)
    except (OSError, ValueError, ValidationError) as e:
        typer.echo(f"❌ Error: invalid configuration: {e}", err=True)
        raise typer.Exit(1)
    if config_file:
        typer.echo(f"Using config file: {config_file}", err=True)

    configs = config.get_pipeline_configs()
    setup_logging(verbose, configs["log_file"])

    try:
        if test_mode:
            size, host = dry_run(recipient, file_path, configs["message"])
            typer.echo(f"🧪 {size} byte message for {recipient} would be delivered via {host}")
        else:
            result = send_file(recipient, file_path, configs["message"], configs["deliver"])
            typer.echo(f"✅ Sent {file_path} to {result.recipient} via {result.exchanger}")
    except DeliveryError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

if __name__ == "__main__":
    app()
