"""
Main entry point: runs the listing job scheduler until SIGINT/SIGTERM.

    python main.py [--config jobs.yml] [--log-level DEBUG] [run|scrape|health|cleanup|sources]
"""

import sys

from listing_jobs.cli import main


def run_job_system():
    """Entry point that can be called from other scripts."""
    return main(sys.argv[1:], default_cmd="run")


if __name__ == "__main__":
    sys.exit(run_job_system())
