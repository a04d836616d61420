"""rolloutctl - blue-green and canary rollout controller."""

__version__ = "0.1.0"
