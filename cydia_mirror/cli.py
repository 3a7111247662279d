"""Command line front end for the repository mirror."""

import argparse
import logging
import signal
import sys

from . import __version__, config
from .errors import InputValidationError
from .index import DEFAULT_ROOT_RULES, RootRelativeRule
from .mirror import MirrorStatus, RepoMirror, format_failures
from .state import RunHandle

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_CANCELLED = 130


def build_parser():
    parser = argparse.ArgumentParser(
        prog="cydia-mirror",
        description='Mirror a Cydia / APT package repository to a local folder.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Mirror a repository into ./mirrors/<host>/
  cydia-mirror https://repo.example.com/ -o mirrors

  # Repository built for 64-bit devices
  cydia-mirror https://repo.example.com/ -o mirrors --arch iphoneos-arm64

  # Only the packages listed in the index, no directory crawl
  cydia-mirror https://repo.example.com/ -o mirrors --no-crawl

  # Resolve "pool/..." Filename values against /cdn/ on the same host
  cydia-mirror https://repo.example.com/ -o mirrors --root-rule pool/=cdn
        '''
    )

    parser.add_argument('url', help='Repository root URL (http or https)')
    parser.add_argument(
        '--output', '-o',
        default='.',
        help='Existing folder to mirror into (default: current directory)'
    )
    parser.add_argument(
        '--arch',
        default=config.DEFAULT_ARCH,
        help='Architecture used for dists/.../binary-<arch>/ probes (default: %(default)s)'
    )
    parser.add_argument(
        '--root-rule',
        action='append',
        default=[],
        metavar='PREFIX=PATH',
        help='Resolve Filename values starting with PREFIX against /PATH/ on the repository host. '
             'May be given more than once; added to the built-in rules.'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=config.DOWNLOAD_TIMEOUT,
        help='Timeout in seconds for downloads and crawl requests (default: %(default)s)'
    )
    parser.add_argument(
        '--probe-timeout',
        type=float,
        default=config.PROBE_TIMEOUT,
        help='Timeout in seconds for metadata probes (default: %(default)s)'
    )
    parser.add_argument(
        '--wait',
        type=float,
        default=config.CRAWL_DELAY,
        help='Seconds to wait between crawl downloads (default: %(default)s)'
    )
    parser.add_argument(
        '--workers',
        type=int,
        default=config.DOWNLOAD_WORKERS,
        help='Parallel package downloads (default: %(default)s, sequential)'
    )
    parser.add_argument(
        '--no-crawl',
        action='store_true',
        help='Skip the directory crawl after downloading the package index'
    )
    parser.add_argument(
        '--full-log',
        action='store_true',
        help='Print the whole run log at the end instead of the summary'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Log every probe and skipped file'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def config_from_args(args):
    rules = list(DEFAULT_ROOT_RULES)
    for text in args.root_rule:
        rules.append(RootRelativeRule.parse(text))

    return config.MirrorConfig(
        arch=args.arch,
        probe_timeout=args.probe_timeout,
        download_timeout=args.timeout,
        delay=args.wait,
        workers=max(1, args.workers),
        crawl=not args.no_crawl,
        root_rules=rules,
    )


def print_result(result, handle, full_log=False):
    if full_log:
        print(handle.log_text)
        return

    print()
    print(f"Files: {result.files_downloaded}/{result.files_total}")
    if result.failures:
        print(f"Failed downloads ({len(result.failures)}):")
        for line in format_failures(result.failures):
            print(line)
    print(result.message)
    if result.log_path:
        print(f"Log: {result.log_path}")


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    try:
        mirror_config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    handle = RunHandle()

    def request_cancel(signum, frame):
        if handle.cancelled:
            # second Ctrl-C: give up immediately
            raise KeyboardInterrupt
        logger.info("Cancellation requested, finishing current file...")
        handle.cancel()

    previous_handler = signal.signal(signal.SIGINT, request_cancel)
    try:
        result = RepoMirror(args.url, args.output, mirror_config, handle).run()
    except InputValidationError as e:
        logger.error(str(e))
        return EXIT_INVALID
    except KeyboardInterrupt:
        logger.info("\n\nDownload interrupted by user")
        return EXIT_CANCELLED
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print_result(result, handle, full_log=args.full_log)

    if result.status is MirrorStatus.SUCCESS:
        return EXIT_OK
    if result.status is MirrorStatus.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
