"""Channels that carry encoded frames: files, pipes and USB HID."""
