"""Allow ``python -m rtp_sampler``."""

from rtp_sampler.cli.main import app

if __name__ == "__main__":
    app()
