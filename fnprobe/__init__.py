"""fnprobe: discover declared functions from a Node.js functions source tree."""

__version__ = "0.1.0"
