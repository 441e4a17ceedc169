#!/usr/bin/env python3
"""
Paperwarp - Document geometry correction from the command line

Detects document outlines and applies grid, edge, un-warp, tri-fold and
perspective corrections to photographed paper. Points are given in display
coordinates together with the display-to-pixel --scale.
"""

import argparse
import logging
import sys

from paperlib import defaults
from paperlib.edge_correction import correct_edges
from paperlib.grid_straighten import straighten
from paperlib.image_ops import ImageOps
from paperlib.perspective import AspectRatio, correct_perspective
from paperlib.quad_detector import QuadrilateralDetector, draw_quadrilaterals
from paperlib.runner import CorrectionRunner
from paperlib.trifold import correct_trifold
from paperlib.unwarp import MODES, correct_unwarp


def parse_point(text):
    """Parse "x,y" into a float pair"""
    try:
        x, y = text.split(',')
        return float(x), float(y)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a point as x,y but got '{text}'")


def parse_size(text):
    """Parse "WxH" into a float pair"""
    try:
        w, h = text.lower().split('x')
        return float(w), float(h)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a size as WxH but got '{text}'")


def parse_aspect(text):
    try:
        return AspectRatio.from_name(text)
    except KeyError:
        names = ", ".join(a.name.lower().replace('_', '-') for a in AspectRatio)
        raise argparse.ArgumentTypeError(f"Unknown aspect ratio '{text}' (choose from {names})")


def exact_points(name, values, count):
    if len(values) != count:
        raise SystemExit(f"{name} needs exactly {count} points, got {len(values)}")
    return values


def run_detect(args, ops):
    detector = QuadrilateralDetector(min_area=args.min_area, max_results=args.max_results, ops=ops)
    image = ops.load_image(args.image)
    result = detector.detect(image)

    for rank, quad in enumerate(result.quadrilaterals, start=1):
        corners = " ".join(f"{p.x:.0f},{p.y:.0f}" for p in quad.points)
        print(f"{rank}\t{quad.confidence:.3f}\t{quad.area:.0f}\t{corners}")

    if args.overlay and image is not None:
        ops.save_image(draw_quadrilaterals(image, result.quadrilaterals), args.overlay, dpi=args.dpi)
    return 0


def build_job(args):
    """Return (function, positional args, keyword args) for a correction command"""
    if args.command == 'grid':
        width, height = args.size
        return straighten, (args.image, args.points, args.rows, args.cols, width, height, args.scale), {}

    if args.command == 'edges':
        width, height = args.size
        return correct_edges, (args.image, args.points, width, height, args.scale), {}

    if args.command == 'unwarp':
        corners = exact_points("--corners", args.corners, 4)
        handles = exact_points("--handles", args.handles, 4)
        return correct_unwarp, (args.image, corners, handles, args.scale), {'mode': args.mode}

    if args.command == 'trifold':
        points = exact_points("--points", args.points, 8)
        return correct_trifold, (args.image, points, args.scale), {}

    points = exact_points("--points", args.points, 4)
    return correct_perspective, (args.image, points, args.scale), {
        'aspect': args.aspect, 'custom_ratio': args.custom_ratio}


def run_correction(args, ops):
    fn, fn_args, fn_kwargs = build_job(args)
    fn_kwargs['ops'] = ops

    # Corrections run on a worker; the main thread waits for the result
    with CorrectionRunner(max_workers=1) as runner:
        future = runner.submit(fn, *fn_args, **fn_kwargs)
        try:
            result = future.result()
        except KeyboardInterrupt:
            runner.cancel(future)
            raise

    if result is None:
        logging.error(f"{args.command}: correction produced no image")
        return 1

    path = ops.save_image(result, args.output, dpi=args.dpi)
    print(path)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description='Paperwarp - Document geometry correction')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase log verbosity (-v info, -vv debug)')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('image', help='Source image file')
    common.add_argument('--dpi', type=int, default=defaults.DEFAULT_DPI,
                        help=f'DPI written to the output file (default: {defaults.DEFAULT_DPI})')

    correction = argparse.ArgumentParser(add_help=False, parents=[common])
    correction.add_argument('output', help='Output image file')
    correction.add_argument('--scale', type=float, default=1.0,
                            help='Display to pixel scale factor of the given points (default: 1.0)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    detect = subparsers.add_parser('detect', parents=[common], help='List candidate document outlines')
    detect.add_argument('--min-area', type=float, default=defaults.DETECT_MIN_AREA,
                        help=f'Minimum area as a fraction of the image (default: {defaults.DETECT_MIN_AREA})')
    detect.add_argument('--max-results', type=int, default=defaults.DETECT_MAX_RESULTS,
                        help=f'Maximum number of candidates (default: {defaults.DETECT_MAX_RESULTS})')
    detect.add_argument('--overlay', help='Write an image with the candidates outlined')

    grid = subparsers.add_parser('grid', parents=[correction], help='Straighten with a dragged control grid')
    grid.add_argument('--rows', type=int, required=True, help='Grid rows including edges')
    grid.add_argument('--cols', type=int, required=True, help='Grid columns including edges')
    grid.add_argument('--size', type=parse_size, required=True, help='Display size as WxH')
    grid.add_argument('--points', type=parse_point, nargs='+', required=True,
                      help='Dragged grid points x,y in row-major order')

    edges = subparsers.add_parser('edges', parents=[correction], help='Straighten wavy edges')
    edges.add_argument('--size', type=parse_size, required=True, help='Display size as WxH')
    edges.add_argument('--points', type=parse_point, nargs='+', required=True,
                       help='Points x,y placed along the wavy edges')

    unwarp = subparsers.add_parser('unwarp', parents=[correction], help='Straighten curved quad edges')
    unwarp.add_argument('--corners', type=parse_point, nargs='+', required=True,
                        help='Corners x,y as TL TR BL BR')
    unwarp.add_argument('--handles', type=parse_point, nargs='+', required=True,
                        help='Edge handles x,y as top right bottom left')
    unwarp.add_argument('--mode', choices=MODES, default='global',
                        help='global: new image of the region; local: patch the region in place (default: global)')

    trifold = subparsers.add_parser('trifold', parents=[correction], help='Rectify a tri-folded page')
    trifold.add_argument('--points', type=parse_point, nargs='+', required=True,
                         help='TL TR upper-fold-left upper-fold-right lower-fold-left lower-fold-right BL BR')

    perspective = subparsers.add_parser('perspective', parents=[correction],
                                        help='Rectify a 4-corner selection')
    perspective.add_argument('--points', type=parse_point, nargs='+', required=True,
                             help='The four corners x,y in any order')
    perspective.add_argument('--aspect', type=parse_aspect, default=AspectRatio.ORIGINAL,
                             help='Target aspect ratio, e.g. original, square, a4-portrait, custom (default: original)')
    perspective.add_argument('--custom-ratio', type=float,
                             help='Height / width used with --aspect custom')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    ops = ImageOps()
    if args.command == 'detect':
        return run_detect(args, ops)
    return run_correction(args, ops)


if __name__ == "__main__":
    sys.exit(main())
