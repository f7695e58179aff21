"""
kltrack Command Line Interface

Usage:
    kltrack <command> [options]

Commands:
    detect      Detect good features to track in an image
    track       Track features from one image to the next

Examples:
    kltrack detect frame0001.png -o features0001.txt
    kltrack track frame0001.png frame0002.png -o features0002.txt
    kltrack track frame0001.png frame0002.png -f features0001.txt -c klt.json
"""

import sys
import argparse
import logging

from kltrack import __version__


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='kltrack',
        description='Pyramidal KLT feature detection and tracking',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        '-V', '--version',
        action='version',
        version=f'kltrack {__version__}',
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '-c', '--config',
        default=None,
        help='JSON configuration file (KLT_* environment variables override it)',
    )
    common.add_argument(
        '-o', '--output',
        default=None,
        help='Write features to this file',
    )
    common.add_argument(
        '-w', '--window-size',
        type=int,
        default=None,
        help='Tracking window size, odd (default: 7)',
    )
    common.add_argument(
        '-l', '--levels',
        type=int,
        default=None,
        help='Number of pyramid levels (default: 3)',
    )
    common.add_argument(
        '-d', '--min-distance',
        type=float,
        default=None,
        help='Minimum distance between features (default: 10)',
    )
    common.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase log verbosity (-v info, -vv debug)',
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Detect command
    detect_parser = subparsers.add_parser(
        'detect',
        parents=[common],
        help='Detect good features to track',
    )
    detect_parser.add_argument('image', help='Input image file')

    # Track command
    track_parser = subparsers.add_parser(
        'track',
        parents=[common],
        help='Track features from IMAGE_A to IMAGE_B',
    )
    track_parser.add_argument('image_a', help='First image file')
    track_parser.add_argument('image_b', help='Second image file')
    track_parser.add_argument(
        '-f', '--features',
        default=None,
        help='Feature file for IMAGE_A (default: detect in IMAGE_A)',
    )
    track_parser.add_argument(
        '-j', '--workers',
        type=int,
        default=None,
        help='Number of worker threads (default: none)',
    )
    track_parser.add_argument(
        '--aligned',
        action='store_true',
        help='Use integer-aligned refinement',
    )
    track_parser.add_argument(
        '--keep-lost',
        action='store_true',
        help='Also write features whose tracking failed',
    )

    # Parse arguments
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _configure_logging(args.verbose)

    from kltrack.core.config import ConfigurationError

    try:
        config = _load_config(args)
        # Dispatch to appropriate command
        if args.command == 'detect':
            return run_detect(args, config)
        elif args.command == 'track':
            return run_track(args, config)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    parser.print_help()
    return 1


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def _load_config(args):
    from kltrack.core.config import resolve_config

    return resolve_config(
        args.config,
        window_size=args.window_size,
        pyramid_levels=args.levels,
        min_feature_distance=args.min_distance,
        use_aligned=True if getattr(args, 'aligned', False) else None,
    )


def _read_image(path):
    import cv2

    image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if image is None:
        raise FileNotFoundError(f"Could not read image: {path}")
    return image


def run_detect(args, config):
    """Run feature detection command."""
    from kltrack.image import ImagePyramid
    from kltrack.tracking import FeatureDetector
    from kltrack.tracking.track_io import write_feature_file

    print(f"Detecting features in {args.image}")
    image = _read_image(args.image)
    pyramid = ImagePyramid.from_image(
        image, levels=config.pyramid_levels, sigma=config.pyramid_sigma
    )
    features = FeatureDetector(config).detect(pyramid)
    print(f"Found {len(features)} features")

    if args.output:
        write_feature_file(args.output, features, header=f"features of {args.image}")
        print(f"Wrote {args.output}")
    return 0


def run_track(args, config):
    """Run feature tracking command."""
    from kltrack.image import ImagePyramid
    from kltrack.tracking import FeatureDetector, PyramidalTracker
    from kltrack.tracking.track_io import read_feature_file, write_feature_file

    print(f"Tracking features from {args.image_a} to {args.image_b}")
    pyramids = [
        ImagePyramid.from_image(
            _read_image(path),
            levels=config.pyramid_levels,
            sigma=config.pyramid_sigma,
        )
        for path in (args.image_a, args.image_b)
    ]

    if args.features:
        features = read_feature_file(args.features)
    else:
        features = FeatureDetector(config).detect(pyramids[0])

    results, stats = PyramidalTracker(config).track_features(
        pyramids[0], features, pyramids[1], max_workers=args.workers
    )
    print(
        f"{stats.tracked} tracked, {stats.lost} lost "
        f"({stats.ill_conditioned} ill-conditioned, "
        f"{stats.out_of_bounds} out of bounds, "
        f"{stats.not_converged} not converged)"
    )

    if args.output:
        tracked = [r.feature for r in results if r.ok or args.keep_lost]
        write_feature_file(
            args.output, tracked, header=f"features tracked into {args.image_b}"
        )
        print(f"Wrote {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
