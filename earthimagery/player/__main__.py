#!/usr/bin/env python3
"""
Headless timelapse player.
Plays a date range from a running server into an in-memory sink and reports
buffering progress, useful to check a range end to end without a browser.

Usage:
    python -m earthimagery.player GOES18 CONUS GEOCOLOR 1km 2025-07-20 2025-07-22 [--rate 5]
"""

import argparse
import asyncio
import logging
import sys
import time

from ..services.hls.validation import InvalidRequest, validate_identity, validate_range
from .config import PLAYBACK_RATES, PlayerSettings
from .controller import BufferState, PlaybackController
from .sink import BufferedVideoSink


async def play(args) -> int:
    identity = validate_identity(args.satellite, args.sector, args.product, args.resolution)
    from_date, to_date = validate_range(args.from_date, args.to_date)

    settings = PlayerSettings()
    if args.base_url:
        settings.base_url = args.base_url

    sink = BufferedVideoSink()
    controller = PlaybackController(sink, settings=settings)
    controller.set_playback_rate(args.rate)

    start = time.time()
    try:
        session = await controller.select(identity, from_date, to_date)
        last_report = None
        while time.time() - start < args.timeout:
            if session.buffer_state == BufferState.ERROR:
                print(f"\n{session.error}")
                return 1

            report = (session.buffer_state.value, session.loaded_segment_count, round(sink.current_time))
            if report != last_report:
                print(
                    f"\r{session.buffer_state.value:<17} "
                    f"{session.loaded_segment_count}/{session.total_segment_count} segments "
                    f"({session.progress:.0%} of target)  "
                    f"{sink.current_time:7.1f}s / {sink.duration:.1f}s",
                    end="",
                    flush=True,
                )
                last_report = report

            if sink.duration and sink.current_time >= sink.duration:
                print(f"\nFinished in {time.time() - start:.1f}s")
                return 0

            await asyncio.sleep(args.tick)
            sink.advance(args.tick)

        print(f"\nTimed out after {args.timeout:.0f}s")
        return 2
    finally:
        await controller.close()


def main():
    parser = argparse.ArgumentParser(description='Play a timelapse date range headless')
    parser.add_argument('satellite', help='Satellite, e.g. GOES18')
    parser.add_argument('sector', help='Sector, e.g. CONUS')
    parser.add_argument('product', help='Product, e.g. GEOCOLOR')
    parser.add_argument('resolution', help='Resolution, e.g. 1km')
    parser.add_argument('from_date', metavar='from', help='First day (YYYY-MM-DD)')
    parser.add_argument('to_date', metavar='to', help='Last day (YYYY-MM-DD)')
    parser.add_argument('--base-url', help='Server URL (default: from settings)')
    parser.add_argument('--rate', type=float, default=1.0, choices=PLAYBACK_RATES, help='Playback rate (default: 1)')
    parser.add_argument('--tick', type=float, default=0.5, help='Position update interval in seconds (default: 0.5)')
    parser.add_argument('--timeout', type=float, default=600.0, help='Give up after this many seconds (default: 600)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log engine and controller activity')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(play(args))
    except InvalidRequest as e:
        print(f"Invalid request: {e}", file=sys.stderr)
        code = 2
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == '__main__':
    main()
