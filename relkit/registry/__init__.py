"""Package registry access through configured commands."""

from relkit.registry.command import CommandRegistry, classify_publish_failure, render_command

__all__ = ["CommandRegistry", "classify_publish_failure", "render_command"]
