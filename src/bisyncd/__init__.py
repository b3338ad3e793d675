"""bisyncd - keeps local directories mirrored against an rclone remote."""

__version__ = "0.1.0"
