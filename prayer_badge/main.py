import argparse
import logging
import sys
from prayer_badge.core.app import MODES, PrayerBadgeApp

def setup_basic_logging():
    """Setup basic stdout logging before config is loaded"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:  # Only add handler if none exists
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        ))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.DEBUG)
        logging.debug("Basic logging initialized")


def main(argv=None):
    setup_basic_logging()

    parser = argparse.ArgumentParser(description='Prayer time countdown badge')
    parser.add_argument('--config',
                       help='Path to config file (default: ./config.yaml)')
    parser.add_argument('mode', nargs='?', default='run', choices=MODES,
                       help='run both contexts, or only the foreground countdown or the background badge alarm')

    args = parser.parse_args(argv)
    config_path = args.config if args.config else "config.yaml"

    app = PrayerBadgeApp(config_path=config_path)
    app.run(args.mode)


if __name__ == "__main__":
    main()
