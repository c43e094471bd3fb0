"""Draw a pipeline snapshot with matplotlib (top-down, display frame)."""
import matplotlib

matplotlib.use('Agg')
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402


def render_snapshot(points: np.ndarray, output_path: str,
                    point_size: int = 3, target_frame: str = "map",
                    background: str = "white"):
    """Save an (N, 6) snapshot of (x, y, r, g, b, a) rows as an image.

    Args:
        points: Output of ``PointCloudPipeline.snapshot()``.
        output_path: Image path (format from the extension).
        point_size: Marker size in pixels, as configured for the display.
        target_frame: Used for axis labels only.
        background: Axes face color.
    """
    fig, ax = plt.subplots(figsize=(10, 10))
    ax.set_facecolor(background)
    if len(points) > 0:
        ax.scatter(points[:, 0], points[:, 1], s=float(point_size) ** 2,
                   c=np.clip(points[:, 2:6], 0.0, 1.0), marker='s',
                   linewidths=0)
    ax.set_aspect('equal', adjustable='datalim')
    ax.set_xlabel(f'X [{target_frame}] (m)')
    ax.set_ylabel(f'Y [{target_frame}] (m)')
    ax.set_title(f'Point cloud ({len(points):,} points)')
    fig.savefig(output_path, dpi=100, bbox_inches='tight')
    plt.close(fig)
    print(f"[Viewer] Saved {output_path} ({len(points):,} points)")
