"""Entry point for `python -m fixladder.cli` invocation."""


def main():
    """Run the CLI with proper program name."""
    from fixladder.cli.app import app

    app(prog_name="fixladder")


if __name__ == "__main__":
    main()
