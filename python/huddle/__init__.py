"""Huddle: realtime direct and group messaging backend."""
