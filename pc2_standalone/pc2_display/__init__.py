"""PointCloud2 display pipeline: decode, colorize, transform and buffer clouds."""
