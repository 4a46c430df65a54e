"""
The main entry point of the bookpress command.
"""
import logging
import sys

from .terms.localized_terms import LocalizedTerms


def main(argv=None):
    """Runs the command-line interface and exits with its status."""
    log = logging.getLogger("bookpress")

    # Load term translations from JSON
    LocalizedTerms.load_terms()

    try:
        from .cli import run_cli
        code = run_cli(argv)
    except Exception:
        log.exception("A critical error occurred while running the CLI.")
        code = 1
    sys.exit(code)


if __name__ == '__main__':
    main()
