from azrecon.cli import cli


def main():
    """Entry point for the azr CLI. Delegates to azrecon.cli.app:cli."""
    cli()


if __name__ == "__main__":
    main()
