"""taskspine command-line interface (typer + rich)."""
