# bootfix/__main__.py
from bootfix.cli import app


def main():
    """
    Main application
    """
    app()


if __name__ == "__main__":
    main()
