#!/usr/bin/env python3
"""PointCloud2 display replay.

Replays a PointCloud2 topic from a ROS1 bag through the display pipeline
(decode -> colorize -> transform -> bounded history) and saves what the
display would show at the end of the replay.

Usage:
    python run.py my_scan.bag --topic /velodyne_points
    python run.py my_scan.bag --config display.yaml --output cloud.png
    python run.py my_scan.bag --topic /os_cloud --color-mode intensity \
        --rainbow --automaxmin --buffer-size 20 --target-frame odom

Outputs (all saved next to --output):
    1. <output>.png            - top-down render of the buffered scans
    2. <output>_settings.yaml  - the effective display settings
"""
import argparse
import os
import sys
import time

# Add this directory to path so pc2_display package is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from pc2_display.bag_reader import BagRecordSource, list_pointcloud_topics
from pc2_display.config import DisplayConfig, load_config, save_config
from pc2_display.pipeline import PointCloudPipeline
from pc2_display.render import render_snapshot
from pc2_display.transforms import TransformStore


def _apply_overrides(config: DisplayConfig, args) -> DisplayConfig:
    if args.topic:
        config.topic = args.topic
    if args.target_frame:
        config.target_frame = args.target_frame
    if args.buffer_size is not None:
        config.buffer_size = max(1, args.buffer_size)
    if args.color_mode:
        config.color_mode = args.color_mode
    if args.rainbow:
        config.use_rainbow = True
    if args.automaxmin:
        config.use_automaxmin = True
    if args.unpack_rgb:
        config.unpack_rgb = True
    return config


def main():
    parser = argparse.ArgumentParser(
        description='PointCloud2 display replay\n\n'
                    'Replay a rosbag through the display pipeline and save:\n'
                    '  1. A top-down render of the buffered scans\n'
                    '  2. The effective display settings (YAML)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('bag', help='Path to ROS1 .bag file')
    parser.add_argument('--config', default=None,
                        help='Path to YAML display settings '
                             '(default: display.yaml in this folder)')
    parser.add_argument('--topic', default=None,
                        help='PointCloud2 topic (default: from config, or '
                             'the first PointCloud2 topic in the bag)')
    parser.add_argument('--target-frame', default=None,
                        help='Display frame (default: from config)')
    parser.add_argument('--buffer-size', type=int, default=None,
                        help='Number of scans kept for display')
    parser.add_argument('--color-mode', default=None,
                        help='Field to color by ("Flat Color" or a field name)')
    parser.add_argument('--rainbow', action='store_true',
                        help='Hue interpolation instead of min/max gradient')
    parser.add_argument('--automaxmin', action='store_true',
                        help='Track the value range automatically')
    parser.add_argument('--unpack-rgb', action='store_true',
                        help='Color field holds packed RGB bytes')
    parser.add_argument('--rate', type=float, default=0.0,
                        help='Playback speed vs. bag time (0 = unthrottled)')
    parser.add_argument('--hz', type=float, default=10.0,
                        help='Render-side refresh rate while replaying')
    parser.add_argument('--output', default=None,
                        help='Output image (default: <bag>_cloud.png)')

    args = parser.parse_args()

    bag_path = os.path.abspath(args.bag)
    if not os.path.isfile(bag_path):
        print(f"Error: Bag file not found: {bag_path}")
        sys.exit(1)

    # Config
    if args.config:
        config_path = os.path.abspath(args.config)
    else:
        config_path = os.path.join(
            os.path.dirname(os.path.abspath(__file__)), 'display.yaml')
    if os.path.isfile(config_path):
        config = load_config(config_path)
    elif args.config:
        print(f"Error: Config file not found: {config_path}")
        sys.exit(1)
    else:
        config = DisplayConfig()
    config = _apply_overrides(config, args)

    if not config.topic:
        topics = list_pointcloud_topics(bag_path)
        if not topics:
            print(f"Error: No PointCloud2 topics in {bag_path}")
            sys.exit(1)
        config.topic = topics[0]

    # Output paths
    if args.output:
        image_path = os.path.abspath(args.output)
    else:
        image_path = os.path.splitext(bag_path)[0] + '_cloud.png'
    settings_path = os.path.splitext(image_path)[0] + '_settings.yaml'
    os.makedirs(os.path.dirname(image_path), exist_ok=True)

    print("=" * 60)
    print("  PointCloud2 Display Replay")
    print("=" * 60)
    print(f"  Bag:          {bag_path}")
    print(f"  Topic:        {config.topic}")
    print(f"  Target frame: {config.target_frame}")
    print(f"  Buffer size:  {config.buffer_size}")
    print(f"  Color mode:   {config.color_mode}")
    print(f"  Outputs:")
    print(f"    1. Render:   {image_path}")
    print(f"    2. Settings: {settings_path}")
    print("=" * 60)

    t0 = time.time()

    transforms = TransformStore()
    source = BagRecordSource(bag_path, transforms=transforms, rate=args.rate)
    topic = config.topic
    config.topic = ""
    pipeline = PointCloudPipeline(config, transforms=transforms,
                                  subscriber=source)

    # ── Replay: ingestion on the replay thread, render pass here ─────
    pipeline.set_topic(topic)
    subscription = pipeline.subscription
    period = 1.0 / args.hz if args.hz > 0 else 0.1
    passes = 0
    while subscription is not None and subscription.running:
        subscription.join(period)
        pipeline.transform()
        pipeline.snapshot()
        passes += 1

    pipeline.transform()
    points = pipeline.snapshot()
    t1 = time.time()
    print(f"\n[Replay] Complete in {t1 - t0:.1f}s ({passes} render passes)")
    print(f"[Replay] Buffered scans: {len(pipeline.buffer)}, "
          f"displayed points: {len(points):,}")
    print(f"[Replay] Status: {pipeline.status.level}: "
          f"{pipeline.status.message}")

    # ── Outputs ──────────────────────────────────────────────────────
    render_snapshot(points, image_path,
                    point_size=pipeline.config.point_size,
                    target_frame=pipeline.config.target_frame)
    save_config(pipeline.settings(), settings_path)
    print(f"[Settings] Saved {settings_path}")

    pipeline.shutdown()


if __name__ == '__main__':
    main()
